"""
Logging configuration for the member sync service.

Provides setup functions for configuring application-wide logging
with support for file rotation, console output, and JSON formatting.
"""

import logging
import logging.handlers
import os
import sys

from .formatters import ConsoleFormatter, JSONFormatter

NOISY_LOGGERS = ("urllib3", "requests", "apscheduler", "passlib", "grpc", "opentelemetry")


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = "member-sync",
    max_bytes: int = 100 * 1024 * 1024,  # 100MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the application

    Replaces any handlers already installed on the root logger, so it is
    safe to call again (e.g. when CLI flags override the environment).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (if None, file logging is disabled)
        console_output: Whether to output to console
        json_format: Use JSON format for both console and file logs
        app_name: Application name for log context
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    def json_formatter() -> JSONFormatter:
        return JSONFormatter(include_timestamp=True, include_hostname=True, app_name=app_name)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(
            json_formatter() if json_format else ConsoleFormatter(use_colors=True)
        )
        root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            json_formatter()
            if json_format
            else logging.Formatter(
                fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"Logging initialized: level={level}, file={log_file or 'none'}, "
        f"console={console_output}, json={json_format}"
    )


def shutdown_logging() -> None:
    """
    Close and remove all root handlers, releasing log file handles.

    Called by the CLI once a command returns so a rotating log file is
    closed before the process exits.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        try:
            handler.close()
        except OSError:
            pass


def configure_from_env(level: str | None = None) -> None:
    """
    Configure logging from environment variables

    Environment variables:
        LOG_LEVEL: Log level (default: INFO)
        LOG_FILE: Log file path (default: none)
        LOG_JSON: Use JSON format (default: false)
        LOG_CONSOLE: Enable console output (default: true)

    Args:
        level: Overrides LOG_LEVEL when given
    """
    truthy = ("true", "1", "yes")

    setup_logging(
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE") or None,
        console_output=os.getenv("LOG_CONSOLE", "true").lower() in truthy,
        json_format=os.getenv("LOG_JSON", "false").lower() in truthy,
    )
