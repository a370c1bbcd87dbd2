"""
日志配置

taskgraph 的日志统一写入名为 "taskgraph" 的 logger。引擎在校验拒绝、
提交变更、遍历发现环时调用 task_log，记录上附带上下文字段：

- project_id: 所在项目
- operation: 引擎操作（validate / commit / traverse）
- task_id: 相关任务

文本格式把上下文折叠成 "[operation project_id/task_id]" 前缀，JSON 格式按字段输出。
默认只输出 WARNING 及以上到 stderr，保证 CLI 的 JSON 输出可被直接解析。
"""

import logging
import logging.handlers
import json
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any

from rich.console import Console

LOGGER_NAME = "taskgraph"

# 日志记录上的上下文字段，JSON 输出按此顺序
CONTEXT_FIELDS = ("project_id", "operation", "task_id")

# 日志文件轮转
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 2


class LogLevel(Enum):
    """日志级别（.taskgraphrc 与 --log-level 的取值）"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_logging_level(self) -> int:
        return getattr(logging, self.name)


@dataclass
class LoggingConfig:
    """
    日志配置

    log_file 为 None 时不写文件。
    """
    level: LogLevel = LogLevel.WARNING
    console: bool = True
    log_file: Optional[Path] = None
    json_format: bool = False


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """取出记录上已设置的上下文字段"""
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """每条记录输出一行 JSON"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        entry.update(record_context(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """
    文本格式：[时间] LEVEL [operation project_id/task_id] message

    着色只作用于输出字符串，不修改记录本身。
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, with_time: bool = False, use_colors: bool = False):
        super().__init__()
        self.with_time = with_time
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        parts = [level]
        if self.with_time:
            parts.insert(0, self.formatTime(record))

        prefix = self.context_prefix(record)
        if prefix:
            parts.append(prefix)
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def context_prefix(record: logging.LogRecord) -> str:
        context = record_context(record)
        if not context:
            return ""
        target = "/".join(str(context[k]) for k in ("project_id", "task_id") if k in context)
        operation = context.get("operation")
        inner = " ".join(part for part in (operation, target) if part)
        return f"[{inner}]"


class TaskGraphLogger:
    """taskgraph 日志管理器（单例）"""

    _instance: Optional["TaskGraphLogger"] = None
    _logger: Optional[logging.Logger] = None

    def __new__(cls) -> "TaskGraphLogger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._logger is None:
            self._logger = logging.getLogger(LOGGER_NAME)
            self._config: Optional[LoggingConfig] = None

    def configure(self, config: Optional[LoggingConfig] = None) -> None:
        """
        配置日志系统，替换已有处理器。

        Args:
            config: 日志配置，None 时使用默认配置
        """
        self._config = config or LoggingConfig()
        level = self._config.level.to_logging_level()

        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()
        self._logger.setLevel(level)

        if self._config.console:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(self._formatter(with_time=False, use_colors=sys.stderr.isatty()))
            self._logger.addHandler(handler)

        if self._config.log_file is not None:
            log_path = Path(self._config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
            handler.setFormatter(self._formatter(with_time=True))
            self._logger.addHandler(handler)

    def _formatter(self, with_time: bool, use_colors: bool = False) -> logging.Formatter:
        if self._config.json_format:
            return JSONFormatter()
        return TextFormatter(with_time=with_time, use_colors=use_colors)

    @property
    def config(self) -> Optional[LoggingConfig]:
        return self._config

    @property
    def logger(self) -> logging.Logger:
        """获取 logger 实例，首次使用时按默认配置初始化"""
        if self._config is None:
            self.configure()
        return self._logger

    def task_log(
        self,
        message: str,
        task_id: str,
        operation: Optional[str] = None,
        project_id: Optional[str] = None,
        level: LogLevel = LogLevel.INFO,
    ) -> None:
        """
        任务相关日志。

        Args:
            message: 日志消息
            task_id: 任务 ID
            operation: 引擎操作名（validate、commit、traverse）
            project_id: 项目 ID，空字符串视为未设置
            level: 日志级别
        """
        extra: Dict[str, Any] = {"task_id": task_id}
        if operation:
            extra["operation"] = operation
        if project_id:
            extra["project_id"] = project_id

        self.logger.log(level.to_logging_level(), message, extra=extra)


_console: Optional[Console] = None


def get_console() -> Console:
    """获取共享的 rich 控制台"""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_logger() -> TaskGraphLogger:
    return TaskGraphLogger()


def configure_logging(
    level: str = "warning",
    log_file: Optional[Path] = None,
    json_format: bool = False,
    console: bool = True,
) -> TaskGraphLogger:
    """
    按字符串级别配置日志，CLI 入口与测试使用。

    Raises:
        ValueError: 未知的日志级别
    """
    logger = get_logger()
    logger.configure(LoggingConfig(
        level=LogLevel(level.lower()),
        console=console,
        log_file=Path(log_file) if log_file else None,
        json_format=json_format,
    ))
    return logger
