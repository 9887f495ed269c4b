"""
Custom log formatters for structured and console logging.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

from src.utils.tracing import current_trace_id

# Attributes every LogRecord carries; anything else came from `extra`
STANDARD_RECORD_FIELDS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "asctime",
})


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Fields attached to a record through `extra`."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in STANDARD_RECORD_FIELDS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging

    Outputs one JSON object per record with standard fields, the active
    trace id when there is one, and any extra context under "context".
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_hostname: bool = True,
        app_name: str = "member-sync",
    ):
        """
        Initialize JSON formatter

        Args:
            include_timestamp: Include ISO8601 timestamp
            include_hostname: Include hostname in log records
            app_name: Application name to include in logs
        """
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_hostname = include_hostname
        self.app_name = app_name
        self.hostname = socket.gethostname() if include_hostname else None

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
        }

        if self.include_timestamp:
            log_data["timestamp"] = datetime.fromtimestamp(
                record.created, UTC
            ).isoformat()

        if self.hostname:
            log_data["hostname"] = self.hostname

        trace_id = current_trace_id()
        if trace_id:
            log_data["trace_id"] = trace_id

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }
        log_data["thread"] = record.threadName

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        context = record_context(record)
        if context:
            log_data["context"] = context

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with colors

    Extra context is appended as `[key=value, ...]`.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        """
        Initialize console formatter

        Args:
            use_colors: Whether to use ANSI color codes (only on a TTY)
        """
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_colors and levelname in self.COLORS:
            # Restored below; other handlers share the same record
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            formatted = super().format(record)
        finally:
            record.levelname = levelname

        context = record_context(record)
        if context:
            items = ", ".join(f"{key}={value}" for key, value in context.items())
            formatted += f" [{items}]"

        return formatted
