"""
Structured logging configuration for the member sync service

Provides JSON-formatted logging with trace correlation and contextual
fields (pass id, member code), plus a colored console format for local runs.

Usage:
    from src.utils.logging import setup_logging, ContextLogger

    setup_logging(level="INFO", json_format=True)

    logger = ContextLogger(__name__, pass_id="3f2a9c1b7d40")
    logger.info("Starting member sync pass", source_rows=1200)
"""

from .config import configure_from_env, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
