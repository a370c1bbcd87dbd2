"""
项目会话

为校验后提交的编辑流程加上项目级互斥锁与版本号，
使多个写入方不会同时越过校验。
"""

import threading
from typing import Callable, Iterable, Tuple

from . import editing
from .graph import DependencyError, DependencyGraph, ValidationResult
from .models import Project, Task


class ConcurrentModificationError(DependencyError):
    """提交时项目版本已被其他写入方改变"""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"项目已被修改: 期望版本 {expected}，当前版本 {actual}")


class ProjectSession:
    """
    持有一个 Project 的会话

    两种用法:
    - 悲观：apply() / update_dependencies() 在锁内完成校验与提交
    - 乐观：snapshot() 读取项目与版本，自行计算后 commit(version, project)，
      版本变化时抛出 ConcurrentModificationError，调用方重新读取并校验
    """

    def __init__(self, project: Project):
        self._project = project
        self._version = 0
        self._lock = threading.Lock()

    @property
    def project(self) -> Project:
        with self._lock:
            return self._project

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def snapshot(self) -> Tuple[Project, int]:
        """读取当前项目与版本号"""
        with self._lock:
            return self._project, self._version

    def graph(self) -> DependencyGraph:
        return DependencyGraph(self.project)

    def commit(self, expected_version: int, project: Project) -> int:
        """
        版本未变时替换项目

        Returns:
            新版本号

        Raises:
            ConcurrentModificationError: 版本已变化
        """
        with self._lock:
            if expected_version != self._version:
                raise ConcurrentModificationError(expected_version, self._version)
            self._project = project
            self._version += 1
            return self._version

    def apply(self, edit: Callable[..., Project], *args, **kwargs) -> Project:
        """在锁内对当前项目执行编辑函数并提交；编辑抛出异常时不做任何修改"""
        with self._lock:
            updated = edit(self._project, *args, **kwargs)
            self._project = updated
            self._version += 1
            return updated

    def validate(self, task_id: str, dependencies: Iterable[str]) -> ValidationResult:
        with self._lock:
            return DependencyGraph(self._project).validate_dependency_change(task_id, dependencies)

    def update_dependencies(self, task_id: str, dependencies: Iterable[str]) -> Project:
        return self.apply(editing.set_dependencies, task_id, list(dependencies))

    def add_task(self, task: Task) -> Project:
        return self.apply(editing.add_task, task)

    def complete_task(self, task_id: str, completed: bool = True) -> Project:
        return self.apply(editing.set_completed, task_id, completed)

    def delete_task(self, task_id: str) -> Project:
        return self.apply(editing.remove_task, task_id)
