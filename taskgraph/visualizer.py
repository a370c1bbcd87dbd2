"""
依赖图可视化器

提供项目依赖图的 ASCII 可视化。
"""

from typing import List, Set, Tuple

from .graph import DependencyGraph
from .models import Task


class GraphVisualizer:
    """
    依赖图可视化器

    支持功能:
    - 依赖树（根任务及其下游）
    - 统计摘要
    - 关键路径
    - 单任务行（状态图标与阻塞徽标）
    """

    # 状态图标
    ICON_COMPLETED = "✓"
    ICON_BLOCKED = "⊘"
    ICON_READY = "○"

    MAX_LINE = 60

    def __init__(self, graph: DependencyGraph):
        """
        初始化可视化器

        Args:
            graph: 依赖图
        """
        self._graph = graph

    def state_icon(self, task: Task) -> str:
        if task.completed:
            return self.ICON_COMPLETED
        if not self._graph.can_start(task.id):
            return self.ICON_BLOCKED
        return self.ICON_READY

    def render_task_line(self, task: Task, show_blockers: bool = True) -> str:
        """渲染单个任务行"""
        line = f"{self.state_icon(task)} {task.label}"

        if show_blockers and not task.completed:
            blockers = [t.label for t in self._graph.get_blocking_tasks(task.id)]
            if blockers:
                shown = ", ".join(blockers[:3])
                if len(blockers) > 3:
                    shown += f"... (+{len(blockers) - 3})"
                line += f" ← 阻塞于 {shown}"

        # 截断
        if len(line) > self.MAX_LINE:
            line = line[:self.MAX_LINE - 3] + "..."

        return line

    def render_tree(self) -> str:
        """
        渲染依赖树

        从没有依赖的根任务开始，逐层展开依赖它们的任务。
        每个任务只展开一次；汇合（菱形）依赖下再次遇到时输出一行
        "↑ 任务（见上方）"，输出行数不超过任务数加依赖边数。
        使用显式栈，长链不会触及递归深度限制。
        """
        lines: List[str] = []
        shown: Set[str] = set()
        roots = [task for task in self._graph if not task.dependencies]

        # (任务, 前缀, 是否为同级最后一个)，逆序入栈以保持项目顺序
        stack: List[Tuple[Task, str, bool]] = [
            (root, "", i == len(roots) - 1) for i, root in reversed(list(enumerate(roots)))
        ]
        while stack:
            task, prefix, is_last = stack.pop()
            connector = "└── " if is_last else "├── "

            # 已展开过（含环形数据中的回边）
            if task.id in shown:
                lines.append(f"{prefix}{connector}↑ {task.label}（见上方）")
                continue
            shown.add(task.id)
            lines.append(f"{prefix}{connector}{self.render_task_line(task, show_blockers=False)}")

            child_prefix = prefix + ("    " if is_last else "│   ")
            dependents = self._graph.get_dependent_tasks(task.id)
            for i in reversed(range(len(dependents))):
                stack.append((dependents[i], child_prefix, i == len(dependents) - 1))

        return "\n".join(lines)

    def render_summary(self) -> str:
        """渲染摘要"""
        stats = self._graph.stats()

        lines = [
            "┌─────────────────────────────────────┐",
            "│          依赖图摘要                 │",
            "├─────────────────────────────────────┤",
            f"│ 总任务数:     {stats.total_tasks:<22}│",
            f"│ 有依赖任务:   {stats.tasks_with_dependencies:<22}│",
            f"│ 被阻塞:       {stats.blocked_tasks:<22}│",
            f"│ 平均依赖数:   {stats.average_dependencies_per_task:<22.2f}│",
            f"│ 最大深度:     {stats.max_dependency_depth:<22}│",
            "└─────────────────────────────────────┘",
        ]

        return "\n".join(lines)

    def render_critical_path(self) -> str:
        """渲染关键路径"""
        path = self._graph.critical_path()

        if not path:
            return "无关键路径"

        lines = ["关键路径:"]
        for i, task in enumerate(path):
            lines.append(f"  {self.state_icon(task)} {task.label}")
            if i < len(path) - 1:
                lines.append("  ↓")

        lines.append(f"\n链长: {len(path)}")

        return "\n".join(lines)
