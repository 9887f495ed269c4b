"""
Base classes and functionality for database connection pooling.

Pools are lifetime-scoped objects created by the process entry point and
handed to the legacy reader and the application store. Connections are
borrowed with `acquire()` and always returned (or recycled) on exit,
including when the borrowing code raises.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from queue import Empty, Full, Queue
from typing import Any

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from src.utils.metrics import get_or_create_metric
from src.utils.tracing import trace_operation

logger = logging.getLogger(__name__)


CONNECTION_POOL_SIZE = get_or_create_metric(
    lambda: Gauge(
        "db_connection_pool_size",
        "Current size of database connection pool",
        ["database_type", "pool_name"],
    ),
    "db_connection_pool_size",
)

CONNECTION_POOL_ACTIVE = get_or_create_metric(
    lambda: Gauge(
        "db_connection_pool_active",
        "Number of connections currently borrowed from the pool",
        ["database_type", "pool_name"],
    ),
    "db_connection_pool_active",
)

CONNECTION_POOL_WAITS = get_or_create_metric(
    lambda: Counter(
        "db_connection_pool_waits_total",
        "Number of times a connection request had to wait",
        ["database_type", "pool_name"],
    ),
    "db_connection_pool_waits_total",
)

CONNECTION_POOL_ERRORS = get_or_create_metric(
    lambda: Counter(
        "db_connection_pool_errors_total",
        "Number of connection pool errors",
        ["database_type", "pool_name", "error_type"],
    ),
    "db_connection_pool_errors_total",
)

CONNECTION_ACQUIRE_TIME = get_or_create_metric(
    lambda: Histogram(
        "db_connection_acquire_seconds",
        "Time to acquire a connection from pool",
        ["database_type", "pool_name"],
        buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    ),
    "db_connection_acquire_seconds",
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PooledConnection:
    """Wrapper for a pooled database connection with metadata."""

    connection: Any
    created_at: datetime
    last_used: datetime
    use_count: int = 0
    is_healthy: bool = True

    def mark_used(self) -> None:
        """Mark connection as used and update timestamp."""
        self.last_used = _utcnow()
        self.use_count += 1


class ConnectionPoolError(Exception):
    """Base exception for connection pool errors."""

    pass


class PoolExhaustedError(ConnectionPoolError):
    """Raised when no connection becomes available within the timeout."""

    pass


class PoolClosedError(ConnectionPoolError):
    """Raised when attempting to use a closed pool."""

    pass


class BaseConnectionPool:
    """
    Base class for database connection pools.

    Subclasses implement connection creation, health check, reset and close.
    Connections are created lazily up to max_size; min_size connections are
    opened eagerly and maintained by an optional background health check.
    """

    def __init__(
        self,
        min_size: int = 1,
        max_size: int = 5,
        max_idle_time: int = 300,
        max_lifetime: int = 3600,
        health_check_interval: int = 60,
        acquire_timeout: float = 30.0,
        pool_name: str = "default",
    ):
        """
        Initialize connection pool.

        Args:
            min_size: Minimum number of connections to maintain
            max_size: Maximum number of connections allowed
            max_idle_time: Maximum idle time in seconds before recycling
            max_lifetime: Maximum connection lifetime in seconds
            health_check_interval: Seconds between background checks (0 disables)
            acquire_timeout: Timeout for acquiring connection in seconds
            pool_name: Name of the pool for metrics
        """
        if min_size < 0 or max_size < 1 or min_size > max_size:
            raise ValueError(f"Invalid pool size: min={min_size}, max={max_size}")

        self.min_size = min_size
        self.max_size = max_size
        self.max_idle_time = timedelta(seconds=max_idle_time)
        self.max_lifetime = timedelta(seconds=max_lifetime)
        self.health_check_interval = health_check_interval
        self.acquire_timeout = acquire_timeout
        self.pool_name = pool_name

        self._pool: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._all_connections: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = False
        self._stop_event = threading.Event()

        self._fill_to_min_size()

        self._health_check_thread: threading.Thread | None = None
        if health_check_interval > 0:
            self._health_check_thread = threading.Thread(
                target=self._health_check_worker,
                name=f"{pool_name}-health",
                daemon=True,
            )
            self._health_check_thread.start()

        logger.info(
            f"Initialized {self.__class__.__name__} '{pool_name}' "
            f"(min={min_size}, max={max_size})"
        )

    def _create_connection(self) -> Any:
        """Create a new database connection. Must be implemented by subclasses."""
        raise NotImplementedError

    def _is_connection_healthy(self, conn: Any) -> bool:
        """Check if connection is healthy. Must be implemented by subclasses."""
        raise NotImplementedError

    def _reset_connection(self, conn: Any) -> None:
        """Undo per-use session state before the connection is reused."""
        pass

    def _close_connection(self, conn: Any) -> None:
        """Close a database connection. Must be implemented by subclasses."""
        raise NotImplementedError

    def _get_db_type(self) -> str:
        """Get database type for metrics. Must be implemented by subclasses."""
        raise NotImplementedError

    def _labels(self) -> dict[str, str]:
        return {"database_type": self._get_db_type(), "pool_name": self.pool_name}

    def _new_pooled_connection(self) -> PooledConnection:
        now = _utcnow()
        pooled = PooledConnection(
            connection=self._create_connection(), created_at=now, last_used=now
        )
        self._all_connections.append(pooled)
        return pooled

    def _fill_to_min_size(self) -> None:
        with self._lock:
            missing = self.min_size - len(self._all_connections)
            for _ in range(missing):
                try:
                    self._pool.put_nowait(self._new_pooled_connection())
                except Exception as e:
                    logger.error(f"Failed to open connection for pool '{self.pool_name}': {e}")
                    CONNECTION_POOL_ERRORS.labels(**self._labels(), error_type="creation").inc()
                    break
            self._update_metrics()

    def _check_connection_health(self, pooled_conn: PooledConnection) -> bool:
        """
        Check if a pooled connection can be handed out.

        Rejects connections past their lifetime or idle limit, then runs
        the subclass health query.
        """
        now = _utcnow()

        if now - pooled_conn.created_at > self.max_lifetime:
            logger.debug("Connection exceeded max lifetime, recycling")
            return False

        if now - pooled_conn.last_used > self.max_idle_time:
            logger.debug("Connection exceeded max idle time, recycling")
            return False

        try:
            pooled_conn.is_healthy = self._is_connection_healthy(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            pooled_conn.is_healthy = False
            CONNECTION_POOL_ERRORS.labels(**self._labels(), error_type="health_check").inc()
        return pooled_conn.is_healthy

    def _recycle_connection(self, pooled_conn: PooledConnection) -> None:
        """Close and forget a connection."""
        try:
            self._close_connection(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        finally:
            with self._lock:
                if pooled_conn in self._all_connections:
                    self._all_connections.remove(pooled_conn)
                self._update_metrics()

    def _health_check_worker(self) -> None:
        while not self._stop_event.wait(self.health_check_interval):
            try:
                self._perform_health_checks()
            except Exception as e:
                logger.error(f"Health check worker error: {e}")

    def _perform_health_checks(self) -> None:
        """Recycle unhealthy idle connections and top the pool back up."""
        if self._closed:
            return

        idle: list[PooledConnection] = []
        while True:
            try:
                idle.append(self._pool.get_nowait())
            except Empty:
                break

        for pooled_conn in idle:
            if self._check_connection_health(pooled_conn):
                self._pool.put_nowait(pooled_conn)
            else:
                self._recycle_connection(pooled_conn)
                logger.info("Recycled unhealthy idle connection")

        self._fill_to_min_size()

    def _update_metrics(self) -> None:
        with self._lock:
            total_size = len(self._all_connections)
            active_size = total_size - self._pool.qsize()
            CONNECTION_POOL_SIZE.labels(**self._labels()).set(total_size)
            CONNECTION_POOL_ACTIVE.labels(**self._labels()).set(active_size)

    def _checkout(self) -> PooledConnection:
        start_time = time.monotonic()
        waited = False

        while True:
            remaining = self.acquire_timeout - (time.monotonic() - start_time)
            if remaining <= 0:
                raise PoolExhaustedError(
                    f"No connection available in pool '{self.pool_name}' "
                    f"within {self.acquire_timeout}s"
                )

            pooled_conn: PooledConnection | None = None
            try:
                pooled_conn = self._pool.get_nowait()
            except Empty:
                with self._lock:
                    if len(self._all_connections) < self.max_size:
                        try:
                            pooled_conn = self._new_pooled_connection()
                        except Exception as e:
                            CONNECTION_POOL_ERRORS.labels(
                                **self._labels(), error_type="creation"
                            ).inc()
                            raise ConnectionPoolError(
                                f"Failed to open connection for pool '{self.pool_name}': {e}"
                            ) from e

            if pooled_conn is None:
                if not waited:
                    CONNECTION_POOL_WAITS.labels(**self._labels()).inc()
                    waited = True
                try:
                    pooled_conn = self._pool.get(timeout=min(remaining, 0.5))
                except Empty:
                    continue

            if self._check_connection_health(pooled_conn):
                pooled_conn.mark_used()
                CONNECTION_ACQUIRE_TIME.labels(**self._labels()).observe(
                    time.monotonic() - start_time
                )
                return pooled_conn

            logger.info("Connection unhealthy, recycling and retrying")
            self._recycle_connection(pooled_conn)

    def _checkin(self, pooled_conn: PooledConnection) -> None:
        if self._closed:
            self._recycle_connection(pooled_conn)
            return

        try:
            self._reset_connection(pooled_conn.connection)
            self._pool.put_nowait(pooled_conn)
        except Full:
            self._recycle_connection(pooled_conn)
        except Exception as e:
            logger.warning(f"Discarding connection that could not be reset: {e}")
            self._recycle_connection(pooled_conn)
        finally:
            self._update_metrics()

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Borrow a connection for the duration of the block.

        Yields:
            Database connection

        Raises:
            PoolClosedError: If pool is closed
            PoolExhaustedError: If no connection available within timeout
            ConnectionPoolError: If a new connection cannot be opened
        """
        if self._closed:
            raise PoolClosedError(f"Connection pool '{self.pool_name}' is closed")

        with trace_operation(
            "db_pool_acquire",
            kind=trace.SpanKind.CLIENT,
            database_type=self._get_db_type(),
            pool_name=self.pool_name,
        ):
            pooled_conn = self._checkout()
            self._update_metrics()

        try:
            yield pooled_conn.connection
        finally:
            self._checkin(pooled_conn)

    def close(self) -> None:
        """Close all connections and shutdown the pool."""
        if self._closed:
            return

        logger.info(f"Closing connection pool '{self.pool_name}'")
        self._closed = True
        self._stop_event.set()

        with self._lock:
            while True:
                try:
                    self._pool.get_nowait()
                except Empty:
                    break

            for pooled_conn in list(self._all_connections):
                try:
                    self._close_connection(pooled_conn.connection)
                except Exception as e:
                    logger.warning(f"Error closing connection: {e}")

            self._all_connections.clear()
            self._update_metrics()

        logger.info(f"Connection pool '{self.pool_name}' closed")

    def __enter__(self) -> "BaseConnectionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_stats(self) -> dict[str, Any]:
        """Get pool statistics."""
        with self._lock:
            total_size = len(self._all_connections)
            idle_size = self._pool.qsize()

            return {
                "pool_name": self.pool_name,
                "total_connections": total_size,
                "idle_connections": idle_size,
                "active_connections": total_size - idle_size,
                "min_size": self.min_size,
                "max_size": self.max_size,
                "closed": self._closed,
            }
