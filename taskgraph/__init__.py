"""taskgraph - Dependency graph engine for project tasks."""
from .models import (
    Task,
    Project,
    DependencyStats,
    DependencyStatus,
    GraphConfig,
)
from .graph import (
    DependencyGraph,
    ValidationResult,
    ViolationKind,
    DependencyError,
    TaskNotFoundError,
    UnknownTaskError,
    SelfDependencyError,
    CircularDependencyError,
    CycleDetectedError,
)
from .session import ProjectSession, ConcurrentModificationError
from .visualizer import GraphVisualizer
from .core import load_config, load_project, save_project
from .logging import get_logger, configure_logging, TaskGraphLogger

__version__ = "1.0.0"
__all__ = [
    "Task",
    "Project",
    "DependencyStats",
    "DependencyStatus",
    "GraphConfig",
    "DependencyGraph",
    "ValidationResult",
    "ViolationKind",
    "DependencyError",
    "TaskNotFoundError",
    "UnknownTaskError",
    "SelfDependencyError",
    "CircularDependencyError",
    "CycleDetectedError",
    "ProjectSession",
    "ConcurrentModificationError",
    "GraphVisualizer",
    "load_config",
    "load_project",
    "save_project",
    "get_logger",
    "configure_logging",
    "TaskGraphLogger",
]
