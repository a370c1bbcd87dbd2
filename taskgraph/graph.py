"""
任务依赖图引擎

在项目任务快照上回答依赖查询，并在提交前校验依赖变更。
引擎不修改任何任务状态：所有操作只读取传入的 Project，返回值由调用方自行写回存储。

查询对不存在的任务 ID 宽松处理（视为无依赖 / 无被依赖）；
写入校验严格处理（候选依赖中不存在的 ID 一律拒绝）。
校验不要求 task_id 本身已存在，新任务可在插入前校验其初始依赖。
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .logging import LogLevel, get_logger
from .models import DependencyStats, DependencyStatus, Project, Task


class DependencyError(Exception):
    """依赖错误"""
    pass


class TaskNotFoundError(DependencyError):
    """目标任务不存在"""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"任务 {task_id} 不存在")


class UnknownTaskError(DependencyError):
    """依赖中引用了不存在的任务"""

    def __init__(self, unknown_ids: Iterable[str]):
        self.unknown_ids = list(unknown_ids)
        super().__init__(f"依赖中包含不存在的任务: {', '.join(self.unknown_ids)}")


class SelfDependencyError(DependencyError):
    """任务依赖自身"""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"任务 {task_id} 不能依赖自身")


class CircularDependencyError(DependencyError):
    """变更会形成循环依赖"""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__(f"添加这些依赖会形成循环依赖: {' -> '.join(self.cycle)}")


class CycleDetectedError(DependencyError):
    """
    依赖图中已经存在环

    前置条件被破坏（有人绕过了校验直接写入依赖），不属于可恢复的校验失败。
    """

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__(f"依赖图中存在环: {' -> '.join(self.cycle)}")


class ViolationKind(Enum):
    """依赖变更被拒绝的原因"""
    UNKNOWN_IDS = "unknown_ids"
    SELF_DEPENDENCY = "self_dependency"
    WOULD_CREATE_CYCLE = "would_create_cycle"


@dataclass
class ValidationResult:
    """依赖变更校验结果"""
    valid: bool
    task_id: str = ""
    error: Optional[ViolationKind] = None
    unknown_ids: List[str] = field(default_factory=list)   # UNKNOWN_IDS 时的未知 ID
    cycle: List[str] = field(default_factory=list)         # WOULD_CREATE_CYCLE 时的环路径
    message: str = ""

    @classmethod
    def ok(cls, task_id: str = "") -> "ValidationResult":
        return cls(valid=True, task_id=task_id)

    @classmethod
    def from_error(cls, task_id: str, exc: DependencyError) -> "ValidationResult":
        """由异常构造失败结果，消息与异常保持一致"""
        result = cls(valid=False, task_id=task_id, message=str(exc))
        if isinstance(exc, UnknownTaskError):
            result.error = ViolationKind.UNKNOWN_IDS
            result.unknown_ids = exc.unknown_ids
        elif isinstance(exc, SelfDependencyError):
            result.error = ViolationKind.SELF_DEPENDENCY
        elif isinstance(exc, CircularDependencyError):
            result.error = ViolationKind.WOULD_CREATE_CYCLE
            result.cycle = exc.cycle
        else:
            raise TypeError(f"不支持的错误类型: {type(exc).__name__}")
        return result

    def to_exception(self) -> Optional[DependencyError]:
        """转换为对应的异常；校验通过时返回 None"""
        if self.valid:
            return None
        if self.error == ViolationKind.UNKNOWN_IDS:
            return UnknownTaskError(self.unknown_ids)
        if self.error == ViolationKind.SELF_DEPENDENCY:
            return SelfDependencyError(self.task_id)
        return CircularDependencyError(self.cycle)

    def raise_for_error(self) -> None:
        """校验失败时抛出对应异常"""
        exc = self.to_exception()
        if exc is not None:
            raise exc


# DFS 着色
WHITE, GRAY, BLACK = 0, 1, 2


class DependencyGraph:
    """
    项目依赖图

    以一个 Project 快照构造，构造时建立 ID 索引与反向（被依赖）索引。
    图本身不可变；依赖或完成状态变化后请用新的 Project 重新构造。

    支持功能:
    - 可启动判断、阻塞任务 / 被依赖任务查询
    - 完成某任务后会解除阻塞的任务预览
    - 依赖深度、连通依赖链、祖先任务
    - 拓扑排序、关键路径、环扫描
    - 依赖变更校验与阻塞状态重算
    """

    def __init__(self, project: Project):
        self._project = project
        self._tasks: Dict[str, Task] = {task.id: task for task in project.tasks}
        # 反向索引：按项目顺序记录依赖某任务的任务
        self._dependents: Dict[str, List[str]] = {}
        for task in project.tasks:
            for dep_id in task.dependencies:
                self._dependents.setdefault(dep_id, []).append(task.id)

        self._order: Optional[List[str]] = None
        self._depths: Optional[Dict[str, int]] = None
        self._log = get_logger()

    @property
    def project(self) -> Project:
        return self._project

    def get_task(self, task_id: str) -> Optional[Task]:
        """获取任务"""
        return self._tasks.get(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._project.tasks)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def can_start(self, task_id: str) -> bool:
        """
        检查任务是否可以开始

        没有依赖，或所有依赖都已完成时返回 True。
        任务不存在时同样返回 True（没有可违反的依赖）。
        指向不存在任务的依赖视为未满足。
        """
        task = self._tasks.get(task_id)
        if task is None or not task.dependencies:
            return True
        return all(self._is_completed(dep_id) for dep_id in task.dependencies)

    def get_blocking_tasks(self, task_id: str) -> List[Task]:
        """获取阻塞该任务的未完成依赖，按声明顺序"""
        task = self._tasks.get(task_id)
        if task is None:
            return []
        return [
            self._tasks[dep_id]
            for dep_id in task.dependencies
            if dep_id in self._tasks and not self._tasks[dep_id].completed
        ]

    def get_dependent_tasks(self, task_id: str) -> List[Task]:
        """获取依赖该任务的所有任务，按项目顺序"""
        return [self._tasks[tid] for tid in self._dependents.get(task_id, [])]

    def get_blocked_tasks(self, task_id: str) -> List[Task]:
        """获取依赖该任务且自身尚未完成的任务"""
        return [task for task in self.get_dependent_tasks(task_id) if not task.completed]

    def get_tasks_unblocked_by(self, task_id: str) -> List[Task]:
        """
        预览完成该任务后会解除阻塞的任务

        即被依赖任务中，除 task_id 以外的其他依赖均已完成的那些。
        """
        unblocked = []
        for dependent in self.get_dependent_tasks(task_id):
            others = [dep_id for dep_id in dependent.dependencies if dep_id != task_id]
            if all(self._is_completed(dep_id) for dep_id in others):
                unblocked.append(dependent)
        return unblocked

    def dependency_status(self, task_id: str) -> DependencyStatus:
        """汇总单个任务的依赖状态，供界面渲染徽标"""
        can_start = self.can_start(task_id)
        return DependencyStatus(
            task_id=task_id,
            can_start=can_start,
            is_blocked=not can_start,
            blocking_tasks=self.get_blocking_tasks(task_id),
            dependent_tasks=self.get_dependent_tasks(task_id),
        )

    def dependency_depth(self, task_id: str) -> int:
        """
        依赖深度

        无依赖为 0，否则为 1 + 各依赖深度的最大值。不存在的任务深度为 0。

        Raises:
            CycleDetectedError: 依赖图中存在环
        """
        if task_id not in self._tasks:
            return 0
        return self._compute_depths()[task_id]

    def dependency_chain(self, task_id: str) -> List[Task]:
        """
        获取与该任务连通的全部任务（包括自身）

        沿依赖与被依赖两个方向遍历，结果按项目顺序返回。
        """
        if task_id not in self._tasks:
            return []

        seen: Set[str] = {task_id}
        queue = deque([task_id])
        while queue:
            current = queue.popleft()
            neighbours = self._known_dependencies(current) + self._dependents.get(current, [])
            for neighbour in neighbours:
                if neighbour not in seen:
                    seen.add(neighbour)
                    queue.append(neighbour)

        return [task for task in self._project.tasks if task.id in seen]

    def get_ancestors(self, task_id: str) -> List[Task]:
        """获取该任务直接或间接依赖的全部任务，按发现顺序"""
        if task_id not in self._tasks:
            return []

        ancestors: List[Task] = []
        visited: Set[str] = {task_id}
        stack = list(reversed(self._known_dependencies(task_id)))
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            ancestors.append(self._tasks[current])
            stack.extend(reversed(self._known_dependencies(current)))
        return ancestors

    def topological_order(self) -> List[Task]:
        """
        拓扑排序

        依赖总在被依赖任务之前；无约束的任务保持项目顺序。

        Raises:
            CycleDetectedError: 依赖图中存在环
        """
        return [self._tasks[tid] for tid in self._ordered_ids()]

    def critical_path(self) -> List[Task]:
        """
        获取关键路径（最长依赖链），从根任务开始

        Raises:
            CycleDetectedError: 依赖图中存在环
        """
        length: Dict[str, int] = {}
        previous: Dict[str, Optional[str]] = {}

        for tid in self._ordered_ids():
            best: Optional[str] = None
            for dep_id in self._known_dependencies(tid):
                if best is None or length[dep_id] > length[best]:
                    best = dep_id
            previous[tid] = best
            length[tid] = length[best] + 1 if best is not None else 1

        if not length:
            return []

        # 等长时取项目顺序中靠前的终点
        end = max(self._tasks, key=lambda tid: length[tid])
        path = []
        current: Optional[str] = end
        while current is not None:
            path.append(self._tasks[current])
            current = previous[current]
        path.reverse()
        return path

    def find_cycles(self) -> List[List[str]]:
        """
        扫描全图中的环

        每个环以 ID 路径表示，首尾相同，例如 ["a", "b", "a"]。
        指向不存在任务的依赖会被忽略。
        """
        _, cycles = self._depth_first(stop_on_cycle=False)
        return cycles

    def has_cycle(self) -> bool:
        return bool(self.find_cycles())

    def stats(self) -> DependencyStats:
        """
        依赖统计

        blocked_tasks 由 can_start 推导，不依赖任务上缓存的 is_blocked。

        Raises:
            CycleDetectedError: 依赖图中存在环
        """
        total = len(self._project.tasks)
        total_deps = sum(len(task.dependencies) for task in self._project.tasks)
        depths = self._compute_depths()

        return DependencyStats(
            total_tasks=total,
            tasks_with_dependencies=sum(1 for task in self._project.tasks if task.dependencies),
            blocked_tasks=sum(1 for task in self._project.tasks if not self.can_start(task.id)),
            average_dependencies_per_task=total_deps / total if total > 0 else 0.0,
            max_dependency_depth=max(depths.values(), default=0),
        )

    # ------------------------------------------------------------------
    # 变更校验
    # ------------------------------------------------------------------

    def validate_dependency_change(
        self,
        task_id: str,
        candidate_dependencies: Iterable[str],
    ) -> ValidationResult:
        """
        校验把 task_id 的依赖整体替换为 candidate_dependencies 是否可行

        依次检查：
        1. 所有候选依赖都存在（task_id 本身可以尚未加入项目）
        2. 不依赖自身
        3. 不会形成环：任一候选依赖若已（间接）依赖 task_id，则拒绝

        该方法从不抛出异常，失败原因通过返回值携带。
        """
        candidates = list(dict.fromkeys(candidate_dependencies))
        result = self._check_change(task_id, candidates)

        if not result.valid:
            self._log.task_log(
                f"拒绝依赖变更: {result.message}",
                task_id=task_id,
                operation="validate",
                project_id=self._project.id,
            )
        return result

    def validate_new_dependency(self, task_id: str, depends_on: str) -> ValidationResult:
        """校验在现有依赖基础上新增一条 task_id -> depends_on 的依赖"""
        task = self._tasks.get(task_id)
        existing = list(task.dependencies) if task else []
        return self.validate_dependency_change(task_id, existing + [depends_on])

    def recompute_blocked_status(self) -> Project:
        """
        重算每个任务的 is_blocked

        返回新的 Project，原快照不变；只修改 is_blocked 字段。
        """
        tasks = [
            task.model_copy(update={"is_blocked": not self.can_start(task.id)})
            for task in self._project.tasks
        ]
        return self._project.model_copy(update={"tasks": tasks})

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    def _check_change(self, task_id: str, candidates: List[str]) -> ValidationResult:
        unknown = [dep_id for dep_id in candidates if dep_id not in self._tasks]
        if unknown:
            return ValidationResult.from_error(task_id, UnknownTaskError(unknown))

        if task_id in candidates:
            return ValidationResult.from_error(task_id, SelfDependencyError(task_id))

        # 所有候选共享已探索集合：目标相同，已确认到不了 task_id 的节点无需重复搜索
        explored: Set[str] = set()
        for dep_id in candidates:
            path = self._find_path(dep_id, task_id, explored)
            if path is not None:
                return ValidationResult.from_error(task_id, CircularDependencyError([task_id] + path))

        return ValidationResult.ok(task_id)

    def _find_path(self, start: str, target: str, explored: Set[str]) -> Optional[List[str]]:
        """
        沿现有依赖边从 start 搜索 target，返回路径

        找到 target 即返回，调用方随即停止校验；返回 None 时 start 可达的节点
        已全部访问且都到不了 target，因此记入 explored 的节点对后续候选同样成立。
        """
        if start == target:
            return [start]
        if start in explored:
            return None

        path = [start]
        on_path = {start}
        stack = [iter(self._known_dependencies(start))]
        while stack:
            dep_id = next(stack[-1], None)
            if dep_id is None:
                done = path.pop()
                on_path.discard(done)
                explored.add(done)
                stack.pop()
                continue
            if dep_id == target:
                return path + [dep_id]
            # on_path 防止在未经校验的环形数据上死循环
            if dep_id in explored or dep_id in on_path:
                continue
            path.append(dep_id)
            on_path.add(dep_id)
            stack.append(iter(self._known_dependencies(dep_id)))
        return None

    def _depth_first(self, stop_on_cycle: bool) -> Tuple[List[str], List[List[str]]]:
        """
        迭代式着色 DFS

        Returns:
            (后序序列, 发现的环)。后序中依赖总在被依赖任务之前。

        Raises:
            CycleDetectedError: stop_on_cycle 为 True 且发现环
        """
        color = {tid: WHITE for tid in self._tasks}
        post_order: List[str] = []
        cycles: List[List[str]] = []

        for root in self._tasks:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            path = [root]
            stack = [iter(self._known_dependencies(root))]

            while stack:
                dep_id = next(stack[-1], None)
                if dep_id is None:
                    done = path.pop()
                    color[done] = BLACK
                    post_order.append(done)
                    stack.pop()
                    continue

                if color[dep_id] == GRAY:
                    cycle = path[path.index(dep_id):] + [dep_id]
                    if stop_on_cycle:
                        self._log.task_log(
                            f"依赖图中存在环: {' -> '.join(cycle)}",
                            task_id=dep_id,
                            operation="traverse",
                            project_id=self._project.id,
                            level=LogLevel.ERROR,
                        )
                        raise CycleDetectedError(cycle)
                    cycles.append(cycle)
                elif color[dep_id] == WHITE:
                    color[dep_id] = GRAY
                    path.append(dep_id)
                    stack.append(iter(self._known_dependencies(dep_id)))

        return post_order, cycles

    def _ordered_ids(self) -> List[str]:
        if self._order is None:
            self._order, _ = self._depth_first(stop_on_cycle=True)
        return self._order

    def _compute_depths(self) -> Dict[str, int]:
        """按拓扑序自底向上计算所有任务的深度"""
        if self._depths is None:
            depths: Dict[str, int] = {}
            for tid in self._ordered_ids():
                deps = self._tasks[tid].dependencies
                # 不存在的依赖按深度 0 计
                depths[tid] = 1 + max(depths.get(dep_id, 0) for dep_id in deps) if deps else 0
            self._depths = depths
        return self._depths

    def _known_dependencies(self, task_id: str) -> List[str]:
        return [dep_id for dep_id in self._tasks[task_id].dependencies if dep_id in self._tasks]

    def _is_completed(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and task.completed
