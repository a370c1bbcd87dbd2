"""
日志测试

覆盖引擎实际写出的上下文字段（project_id / operation / task_id）
以及 CLI 使用的配置入口。
"""

import json
import logging

import pytest

from taskgraph import editing
from taskgraph.graph import CycleDetectedError, DependencyGraph
from taskgraph.logging import (
    JSONFormatter,
    LoggingConfig,
    LogLevel,
    TaskGraphLogger,
    TextFormatter,
    configure_logging,
    get_console,
    get_logger,
)


def make_record(msg: str = "提交", **context) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "taskgraph", "levelno": logging.INFO, "levelname": "INFO", "msg": msg})
    for name, value in context.items():
        setattr(record, name, value)
    return record


def taskgraph_records(caplog, operation: str):
    return [r for r in caplog.records if r.name == "taskgraph" and getattr(r, "operation", None) == operation]


class TestEngineContext:
    """引擎日志携带的上下文字段"""

    def test_rejected_change(self, chain_project, caplog):
        """校验拒绝：operation=validate，带项目与任务 ID"""
        with caplog.at_level(logging.INFO, logger="taskgraph"):
            DependencyGraph(chain_project).validate_dependency_change("A", ["C"])

        record = taskgraph_records(caplog, "validate")[-1]
        assert record.task_id == "A"
        assert record.project_id == "proj-1"
        assert record.levelno == logging.INFO
        assert "A -> C -> B -> A" in record.getMessage()

    def test_accepted_change_not_logged(self, chain_project, caplog):
        with caplog.at_level(logging.INFO, logger="taskgraph"):
            DependencyGraph(chain_project).validate_dependency_change("C", ["A"])
        assert taskgraph_records(caplog, "validate") == []

    def test_commit(self, chain_project, caplog):
        """编辑提交：operation=commit"""
        with caplog.at_level(logging.INFO, logger="taskgraph"):
            editing.set_completed(chain_project, "A")

        record = taskgraph_records(caplog, "commit")[-1]
        assert record.task_id == "A"
        assert record.project_id == "proj-1"

    def test_cycle_precondition_logged_as_error(self, project_factory, caplog):
        """已有环时的遍历失败以 ERROR 记录，operation=traverse"""
        graph = DependencyGraph(project_factory({"a": ["b"], "b": ["a"]}))
        with caplog.at_level(logging.INFO, logger="taskgraph"):
            with pytest.raises(CycleDetectedError):
                graph.topological_order()

        record = taskgraph_records(caplog, "traverse")[-1]
        assert record.levelno == logging.ERROR
        assert record.project_id == "proj-1"

    def test_empty_project_id_omitted(self, caplog):
        with caplog.at_level(logging.INFO, logger="taskgraph"):
            get_logger().task_log("x", task_id="t", operation="commit", project_id="")
        assert not hasattr(caplog.records[-1], "project_id")


class TestFormatters:
    """格式化器"""

    def test_json_fields(self):
        record = make_record("拒绝", project_id="proj-1", operation="validate", task_id="B")
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "INFO"
        assert data["message"] == "拒绝"
        assert (data["project_id"], data["operation"], data["task_id"]) == ("proj-1", "validate", "B")

    def test_json_without_context(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert not {"project_id", "operation", "task_id"} & data.keys()

    def test_text_prefix(self):
        line = TextFormatter().format(make_record("提交", project_id="proj-1", operation="commit", task_id="B"))
        assert line == "INFO [commit proj-1/B] 提交"

    def test_text_without_context(self):
        assert TextFormatter().format(make_record("hello")) == "INFO hello"

    def test_colors_only_in_output(self):
        record = make_record("hi")
        line = TextFormatter(use_colors=True).format(record)
        assert "\033[32mINFO\033[0m" in line
        assert record.levelname == "INFO"


class TestConfigure:
    """配置入口"""

    def test_singleton(self):
        assert get_logger() is TaskGraphLogger()

    def test_default_is_quiet(self):
        config = LoggingConfig()
        assert config.level == LogLevel.WARNING
        assert config.log_file is None

    def test_reconfigure_replaces_handlers(self):
        logger = configure_logging(level="info")
        configure_logging(level="info")
        assert len(logger.logger.handlers) == 1
        assert logger.logger.level == logging.INFO

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            configure_logging(level="verbose")

    def test_log_file_json(self, temp_dir, chain_project):
        """写入文件的 JSON 行带完整上下文"""
        log_path = temp_dir / "logs" / "taskgraph.log"
        logger = configure_logging(level="info", log_file=log_path, json_format=True, console=False)

        editing.add_dependency(chain_project, "C", "A")
        for handler in logger.logger.handlers:
            handler.flush()

        data = json.loads(log_path.read_text(encoding="utf-8").splitlines()[-1])
        assert data["operation"] == "commit"
        assert data["task_id"] == "C"
        assert data["project_id"] == "proj-1"

    def test_log_file_text_has_timestamp(self, temp_dir):
        log_path = temp_dir / "taskgraph.log"
        logger = configure_logging(level="info", log_file=log_path, console=False)
        logger.task_log("提交", task_id="B", operation="commit")
        for handler in logger.logger.handlers:
            handler.flush()

        line = log_path.read_text(encoding="utf-8").splitlines()[-1]
        assert line.endswith("INFO [commit B] 提交")
        assert line[:4].isdigit()

    def test_get_console_shared(self):
        assert get_console() is get_console()
