"""
依赖编辑

校验后提交：每个函数接收一个 Project，返回新的 Project，原对象不变。
涉及依赖的变更先经 DependencyGraph 校验，被拒绝时抛出对应的 DependencyError。
返回的 Project 已重算 is_blocked。
"""

from typing import Iterable

from .graph import DependencyError, DependencyGraph, TaskNotFoundError
from .logging import get_logger
from .models import Project, Task


def _require_task(project: Project, task_id: str) -> Task:
    task = project.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


def _replace_task(project: Project, task_id: str, **changes) -> Project:
    tasks = [
        task.model_copy(update=changes) if task.id == task_id else task
        for task in project.tasks
    ]
    return project.model_copy(update={"tasks": tasks})


def _finalize(project: Project) -> Project:
    return DependencyGraph(project).recompute_blocked_status()


def _log_commit(project: Project, task_id: str, message: str) -> None:
    get_logger().task_log(message, task_id=task_id, operation="commit", project_id=project.id)


def set_dependencies(project: Project, task_id: str, dependencies: Iterable[str]) -> Project:
    """
    把任务的依赖整体替换为 dependencies

    Raises:
        TaskNotFoundError: 任务不存在
        UnknownTaskError / SelfDependencyError / CircularDependencyError: 校验失败
    """
    _require_task(project, task_id)
    deps = list(dict.fromkeys(dependencies))

    DependencyGraph(project).validate_dependency_change(task_id, deps).raise_for_error()

    _log_commit(project, task_id, f"提交依赖变更: {deps}")
    return _finalize(_replace_task(project, task_id, dependencies=deps))


def add_dependency(project: Project, task_id: str, depends_on: str) -> Project:
    """新增一条依赖 task_id -> depends_on"""
    task = _require_task(project, task_id)
    return set_dependencies(project, task_id, task.dependencies + [depends_on])


def remove_dependency(project: Project, task_id: str, depends_on: str) -> Project:
    """移除一条依赖；依赖不存在时不做任何修改"""
    task = _require_task(project, task_id)
    if depends_on not in task.dependencies:
        return project

    deps = [dep_id for dep_id in task.dependencies if dep_id != depends_on]
    _log_commit(project, task_id, f"移除依赖: {depends_on}")
    return _finalize(_replace_task(project, task_id, dependencies=deps))


def add_task(project: Project, task: Task) -> Project:
    """
    添加任务，初始依赖需通过校验

    Raises:
        DependencyError: 任务已存在或初始依赖不合法
    """
    if project.get_task(task.id) is not None:
        raise DependencyError(f"任务 {task.id} 已存在")

    # 以空依赖占位，自依赖报告为 SelfDependencyError 而非未知 ID
    placeholder = task.model_copy(update={"dependencies": []})
    staged = project.model_copy(update={"tasks": project.tasks + [placeholder]})
    DependencyGraph(staged).validate_dependency_change(task.id, task.dependencies).raise_for_error()

    added = task.model_copy(update={"dependencies": list(task.dependencies)})
    _log_commit(project, task.id, "添加任务")
    return _finalize(project.model_copy(update={"tasks": project.tasks + [added]}))


def remove_task(project: Project, task_id: str) -> Project:
    """
    删除任务，并从其他任务的依赖中清除该 ID

    任务不存在时原样返回。
    """
    if project.get_task(task_id) is None:
        return project

    tasks = []
    for task in project.tasks:
        if task.id == task_id:
            continue
        if task_id in task.dependencies:
            task = task.model_copy(
                update={"dependencies": [dep_id for dep_id in task.dependencies if dep_id != task_id]}
            )
        tasks.append(task)

    _log_commit(project, task_id, "删除任务并清理依赖引用")
    return _finalize(project.model_copy(update={"tasks": tasks}))


def set_completed(project: Project, task_id: str, completed: bool = True) -> Project:
    """更新任务完成状态并重算阻塞状态"""
    _require_task(project, task_id)
    _log_commit(project, task_id, f"完成状态: {completed}")
    return _finalize(_replace_task(project, task_id, completed=completed))
