"""Type-safe task graph models with validation."""
from __future__ import annotations
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Task(BaseModel):
    """A node in the dependency graph."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    completed: bool = False
    # Declared order matters for blocking-task listings
    dependencies: list[str] = Field(default_factory=list)
    # Derived; refreshed by DependencyGraph.recompute_blocked_status()
    is_blocked: bool = Field(default=False, alias="isBlocked")

    @field_validator("dependencies")
    @classmethod
    def dedupe_dependencies(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @property
    def label(self) -> str:
        return self.name or self.id


class Project(BaseModel):
    """Graph container. Task order is display order, not graph order."""
    id: str = ""
    name: str = ""
    tasks: list[Task] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "Project":
        seen: set[str] = set()
        for task in self.tasks:
            if task.id in seen:
                raise ValueError(f"Duplicate task id: {task.id}")
            seen.add(task.id)
        return self

    def get_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_ids(self) -> list[str]:
        return [t.id for t in self.tasks]


class DependencyStatus(BaseModel):
    """Everything the presentation layer needs to badge one task."""
    task_id: str
    can_start: bool
    is_blocked: bool
    blocking_tasks: list[Task] = []
    dependent_tasks: list[Task] = []


class DependencyStats(BaseModel):
    """Aggregate counts for dashboards."""
    total_tasks: int = 0
    tasks_with_dependencies: int = 0
    blocked_tasks: int = 0
    average_dependencies_per_task: float = 0.0
    max_dependency_depth: int = 0


class GraphConfig(BaseModel):
    """Repo-level configuration (.taskgraphrc)."""
    project_file: str = "project.json"
    log_level: Literal["debug", "info", "warning", "error"] = "warning"
    log_file: str | None = None
    json_logs: bool = False
    output_format: Literal["rich", "json", "plain"] = "rich"
