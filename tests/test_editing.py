"""
校验后提交的编辑函数测试
"""

import random

import pytest

from taskgraph import editing
from taskgraph.graph import (
    CircularDependencyError,
    DependencyError,
    DependencyGraph,
    SelfDependencyError,
    TaskNotFoundError,
    UnknownTaskError,
)
from taskgraph.models import Task


def deps_of(project, task_id):
    return project.get_task(task_id).dependencies


class TestSetDependencies:
    """set_dependencies"""

    def test_commit_valid_change(self, chain_project):
        updated = editing.set_dependencies(chain_project, "C", ["A"])
        assert deps_of(updated, "C") == ["A"]

    def test_original_untouched(self, chain_project):
        editing.set_dependencies(chain_project, "C", ["A"])
        assert deps_of(chain_project, "C") == ["B"]

    def test_duplicates_collapsed(self, chain_project):
        updated = editing.set_dependencies(chain_project, "D", ["A", "B", "A"])
        assert deps_of(updated, "D") == ["A", "B"]

    def test_blocked_flags_recomputed(self, project_factory):
        project = project_factory({"A": [], "B": []}, completed=["A"])
        updated = editing.set_dependencies(project, "B", ["A"])
        assert updated.get_task("B").is_blocked is False

        project = project_factory({"A": [], "B": []})
        updated = editing.set_dependencies(project, "B", ["A"])
        assert updated.get_task("B").is_blocked is True

    @pytest.mark.parametrize(
        "task_id,deps,exc_type",
        [
            ("A", ["C"], CircularDependencyError),
            ("B", ["B"], SelfDependencyError),
            ("A", ["ghost-id"], UnknownTaskError),
        ],
    )
    def test_rejected_changes_raise(self, chain_project, task_id, deps, exc_type):
        with pytest.raises(exc_type):
            editing.set_dependencies(chain_project, task_id, deps)

    def test_missing_task(self, chain_project):
        with pytest.raises(TaskNotFoundError):
            editing.set_dependencies(chain_project, "ghost", [])


class TestSingleEdge:
    """add_dependency / remove_dependency"""

    def test_add_dependency(self, chain_project):
        updated = editing.add_dependency(chain_project, "C", "A")
        assert deps_of(updated, "C") == ["B", "A"]

    def test_add_existing_dependency_is_noop(self, chain_project):
        updated = editing.add_dependency(chain_project, "B", "A")
        assert deps_of(updated, "B") == ["A"]

    def test_add_cycle_rejected(self, chain_project):
        with pytest.raises(CircularDependencyError):
            editing.add_dependency(chain_project, "B", "D")

    def test_remove_dependency(self, chain_project):
        updated = editing.remove_dependency(chain_project, "D", "A")
        assert deps_of(updated, "D") == ["C"]

    def test_remove_missing_edge(self, chain_project):
        assert editing.remove_dependency(chain_project, "A", "B") is chain_project

    def test_remove_unblocks(self, project_factory):
        project = project_factory({"A": [], "B": ["A"]})
        updated = editing.remove_dependency(project, "B", "A")
        assert updated.get_task("B").is_blocked is False


class TestAddTask:
    """add_task"""

    def test_add_with_dependencies(self, chain_project):
        updated = editing.add_task(chain_project, Task(id="E", name="Deploy", dependencies=["D"]))
        assert updated.task_ids() == ["A", "B", "C", "D", "E"]
        assert updated.get_task("E").is_blocked is True
        assert len(chain_project.tasks) == 4

    def test_duplicate_id(self, chain_project):
        with pytest.raises(DependencyError, match="已存在"):
            editing.add_task(chain_project, Task(id="A"))

    def test_unknown_dependency(self, chain_project):
        with pytest.raises(UnknownTaskError):
            editing.add_task(chain_project, Task(id="E", dependencies=["ghost"]))

    def test_self_dependency(self, chain_project):
        with pytest.raises(SelfDependencyError):
            editing.add_task(chain_project, Task(id="E", dependencies=["E"]))


class TestRemoveTask:
    """remove_task（级联清理）"""

    def test_cascade_clear(self, chain_project):
        updated = editing.remove_task(chain_project, "A")
        assert updated.task_ids() == ["B", "C", "D"]
        assert deps_of(updated, "B") == []
        assert deps_of(updated, "D") == ["C"]

    def test_unknown_task_is_noop(self, chain_project):
        assert editing.remove_task(chain_project, "ghost") is chain_project

    def test_blocked_flags_refreshed(self, chain_project):
        updated = editing.remove_task(chain_project, "A")
        assert updated.get_task("B").is_blocked is False

    @pytest.mark.parametrize("seed", [11, 12, 13])
    def test_no_dangling_references(self, project_factory, seed):
        """随机删除任意任务后，不存在指向不存在任务的依赖"""
        rng = random.Random(seed)
        names = [f"t{i}" for i in range(12)]
        project = project_factory({
            name: rng.sample(names[:i], min(i, rng.randint(0, 4)))
            for i, name in enumerate(names)
        })

        for victim in rng.sample(names, 6):
            project = editing.remove_task(project, victim)
            present = set(project.task_ids())
            assert victim not in present
            for task in project.tasks:
                assert set(task.dependencies) <= present


class TestSetCompleted:
    """set_completed"""

    def test_complete_unblocks_dependents(self, chain_project):
        project = editing.set_completed(chain_project, "A")
        assert project.get_task("A").completed is True
        assert project.get_task("B").is_blocked is False
        assert project.get_task("D").is_blocked is True

    def test_reopen(self, project_factory):
        project = project_factory({"A": [], "B": ["A"]}, completed=["A"])
        project = editing.set_completed(project, "A", completed=False)
        assert project.get_task("B").is_blocked is True

    def test_blocked_consistency(self, chain_project):
        project = chain_project
        for task_id in ["A", "C"]:
            project = editing.set_completed(project, task_id)
            graph = DependencyGraph(project)
            for task in project.tasks:
                assert task.is_blocked == (not graph.can_start(task.id))

    def test_missing_task(self, chain_project):
        with pytest.raises(TaskNotFoundError):
            editing.set_completed(chain_project, "ghost")
