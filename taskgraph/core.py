"""Config and project snapshot loading."""

from __future__ import annotations

import json
from pathlib import Path

from .models import GraphConfig, Project

RC_FILE = ".taskgraphrc"


def load_config(repo: Path) -> GraphConfig:
    """Load config from .taskgraphrc or defaults."""
    rc_file = repo / RC_FILE
    if rc_file.exists():
        data = json.loads(rc_file.read_text(encoding="utf-8"))
        return GraphConfig(**data)
    return GraphConfig()


def load_project(path: Path) -> Project:
    """Load and validate a project snapshot."""
    if not path.exists():
        raise FileNotFoundError(f"Project file not found: {path}")

    return Project.model_validate_json(path.read_text(encoding="utf-8"))


def dump_project(project: Project) -> str:
    return json.dumps(project.model_dump(by_alias=True), indent=2, ensure_ascii=False)


def save_project(project: Project, path: Path) -> None:
    """Write a project snapshot (temp file, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        temp_path.write_text(dump_project(project) + "\n", encoding="utf-8")
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
