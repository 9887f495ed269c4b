"""
Database connection pooling for the legacy SQL Server source and the
PostgreSQL application store.

Pools are created by the process entry point (see member_sync.bootstrap)
and injected into the components that use them; there is no module-level
pool instance.
"""

from .base import (
    BaseConnectionPool,
    ConnectionPoolError,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
)
from .postgres import PostgresConnectionPool
from .sqlserver import SQLServerConnectionPool

__all__ = [
    "BaseConnectionPool",
    "PostgresConnectionPool",
    "SQLServerConnectionPool",
    "PooledConnection",
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
]
