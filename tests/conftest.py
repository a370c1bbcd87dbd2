"""
taskgraph 测试共享 fixtures

为所有测试提供统一的 fixtures 和测试工具。
"""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest
from click.testing import CliRunner

from taskgraph.logging import LoggingConfig, get_logger
from taskgraph.models import Project, Task


# =============================================================================
# 环境 Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def quiet_logging():
    """每个测试前重置日志：只输出到控制台，WARNING 级别"""
    get_logger().configure(LoggingConfig())
    yield


@pytest.fixture
def runner():
    """Click CLI 测试运行器"""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """临时目录 fixture"""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


# =============================================================================
# Factory Fixtures
# =============================================================================

@pytest.fixture
def project_factory():
    """
    项目工厂

    以 {任务 ID: 依赖列表} 描述依赖图，任务顺序即字典顺序。
    直接构造 Project，不经过校验，可用于构造环形等非法数据。
    """
    def _factory(
        graph: Dict[str, List[str]],
        completed: Iterable[str] = (),
        names: Optional[Dict[str, str]] = None,
    ) -> Project:
        done = set(completed)
        names = names or {}
        return Project(
            id="proj-1",
            name="Test Project",
            tasks=[
                Task(id=tid, name=names.get(tid, ""), completed=tid in done, dependencies=deps)
                for tid, deps in graph.items()
            ],
        )

    return _factory


@pytest.fixture
def chain_project(project_factory):
    """A <- B <- C，D 同时依赖 A 和 C"""
    return project_factory({
        "A": [],
        "B": ["A"],
        "C": ["B"],
        "D": ["A", "C"],
    })


@pytest.fixture
def project_file(temp_dir, chain_project):
    """把 chain_project 写入临时 JSON 文件并返回路径"""
    path = temp_dir / "project.json"
    path.write_text(json.dumps(chain_project.model_dump(by_alias=True)), encoding="utf-8")
    return path
