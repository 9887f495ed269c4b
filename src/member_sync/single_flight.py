"""
Single-flight guard: at most one reconciliation pass at a time.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class SingleFlightGuard:
    """
    Non-blocking token marking a pass as in progress.

    Usage:
        guard = SingleFlightGuard("member_sync")
        with guard.hold() as acquired:
            if not acquired:
                return  # another pass is running
            ...
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """
        Try to take the token for the duration of the block.

        Yields:
            True if this caller holds the token, False if it was already taken
        """
        acquired = self.try_acquire()
        if not acquired:
            logger.warning(f"'{self.name}' already in progress, skipping")
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
