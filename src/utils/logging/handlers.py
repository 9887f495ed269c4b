"""
Logger wrapper that attaches contextual fields to every message.
"""

import logging
from .formatters import STANDARD_RECORD_FIELDS


class ContextLogger:
    """
    Logger wrapper that adds contextual information to all log messages

    Usage:
        logger = ContextLogger(__name__, pass_id="3f2a9c1b7d40")
        logger.info("Member synced", member_code="A001")
        # Output includes both pass_id and member_code
    """

    def __init__(self, name: str, **context):
        """
        Initialize context logger

        Args:
            name: Logger name
            **context: Contextual key-value pairs to include in all logs
        """
        self.logger = logging.getLogger(name)
        self.context = context

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return

        extra = {}
        for key, value in {**self.context, **kwargs}.items():
            # LogRecord refuses extra keys that shadow its own attributes
            if key in STANDARD_RECORD_FIELDS:
                key = f"ctx_{key}"
            extra[key] = value

        self.logger.log(level, msg, *args, exc_info=exc_info, extra=extra, stacklevel=3)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self._log(logging.CRITICAL, msg, *args, exc_info=exc_info, **kwargs)

    def bind(self, **context) -> "ContextLogger":
        """
        Derive a logger with additional context

        Args:
            **context: Key-value pairs added to (or overriding) this logger's context

        Returns:
            New ContextLogger sharing the same underlying logger
        """
        return ContextLogger(self.logger.name, **{**self.context, **context})
