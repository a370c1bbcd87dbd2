"""Tests for taskgraph.models."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from taskgraph.models import DependencyStats, GraphConfig, Project, Task


class TestTask:
    """Tests for the Task model."""

    def test_defaults(self):
        task = Task(id="a")
        assert task.name == ""
        assert task.completed is False
        assert task.dependencies == []
        assert task.is_blocked is False

    def test_dependencies_deduplicated_in_order(self):
        task = Task(id="a", dependencies=["c", "b", "c"])
        assert task.dependencies == ["c", "b"]

    def test_is_blocked_alias(self):
        task = Task.model_validate({"id": "a", "isBlocked": True})
        assert task.is_blocked is True
        assert task.model_dump(by_alias=True)["isBlocked"] is True

    def test_populate_by_field_name(self):
        assert Task(id="a", is_blocked=True).is_blocked is True

    def test_label_falls_back_to_id(self):
        assert Task(id="a").label == "a"
        assert Task(id="a", name="Write docs").label == "Write docs"


class TestProject:
    """Tests for the Project model."""

    def test_get_task(self):
        project = Project(tasks=[Task(id="a"), Task(id="b")])
        assert project.get_task("b").id == "b"
        assert project.get_task("zz") is None
        assert project.task_ids() == ["a", "b"]

    def test_duplicate_ids(self):
        with pytest.raises(ValidationError, match="Duplicate task id"):
            Project(tasks=[Task(id="a"), Task(id="a")])


class TestGraphConfig:
    """Tests for GraphConfig."""

    def test_output_format_validated(self):
        with pytest.raises(ValidationError):
            GraphConfig(output_format="xml")

    def test_stats_defaults(self):
        stats = DependencyStats()
        assert stats.total_tasks == 0
        assert stats.average_dependencies_per_task == 0.0
