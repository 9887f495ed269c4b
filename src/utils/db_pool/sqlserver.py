"""SQL Server connection pool for the read-only legacy source."""

import logging
from typing import Any

import pyodbc
from opentelemetry import trace

from src.utils.tracing import trace_operation

from .base import BaseConnectionPool

logger = logging.getLogger(__name__)


class SQLServerConnectionPool(BaseConnectionPool):
    """Connection pool for SQL Server databases."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        driver: str = "ODBC Driver 18 for SQL Server",
        connection_string: str | None = None,
        login_timeout: int = 10,
        query_timeout: int = 0,
        **kwargs: Any,
    ):
        """
        Initialize SQL Server connection pool.

        Args:
            host: SQL Server host (required if connection_string not provided)
            port: SQL Server port (required if connection_string not provided)
            database: Database name (required if connection_string not provided)
            user: Username (required if connection_string not provided)
            password: Password (required if connection_string not provided)
            driver: ODBC driver name
            connection_string: Complete ODBC connection string (alternative to individual params)
            login_timeout: Seconds to wait for a new connection
            query_timeout: Seconds before a statement is aborted (0 = no limit)
            **kwargs: Additional arguments for BaseConnectionPool
        """
        if connection_string:
            self.connection_string = connection_string
            self.host = self._extract_from_conn_str(connection_string, "SERVER")
            self.database = self._extract_from_conn_str(connection_string, "DATABASE")
        else:
            if not all([host, port, database, user, password]):
                raise ValueError(
                    "Either connection_string or all of (host, port, database, user, password) must be provided"
                )
            self.host = host
            self.database = database
            self.connection_string = (
                f"DRIVER={{{driver}}};"
                f"SERVER={host},{port};"
                f"DATABASE={database};"
                f"UID={user};"
                f"PWD={password};"
                f"TrustServerCertificate=yes;"
                f"Encrypt=yes;"
                f"ApplicationIntent=ReadOnly;"
            )
        self.login_timeout = login_timeout
        self.query_timeout = query_timeout

        kwargs.setdefault("pool_name", "legacy")
        super().__init__(**kwargs)

    @staticmethod
    def _extract_from_conn_str(conn_str: str, key: str) -> str:
        """Extract a value from connection string for metrics."""
        for part in conn_str.split(";"):
            if part.strip().upper().startswith(key.upper() + "="):
                return part.split("=", 1)[1].strip()
        return "unknown"

    def _create_connection(self) -> pyodbc.Connection:
        """Create a new SQL Server connection."""
        with trace_operation(
            "sqlserver_connect",
            kind=trace.SpanKind.CLIENT,
            db_host=self.host,
            db_name=self.database,
        ):
            conn = pyodbc.connect(self.connection_string, timeout=self.login_timeout)
            # Reads only; no transaction to hold locks on the legacy tables
            conn.autocommit = True
            if self.query_timeout:
                conn.timeout = self.query_timeout
            return conn

    def _is_connection_healthy(self, conn: pyodbc.Connection) -> bool:
        """Check if SQL Server connection is healthy."""
        if conn is None:
            return False

        try:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            finally:
                cursor.close()
            return True
        except pyodbc.Error:
            return False

    def _close_connection(self, conn: pyodbc.Connection) -> None:
        """Close SQL Server connection."""
        if conn is not None:
            try:
                conn.close()
            except pyodbc.Error as e:
                logger.debug(f"Ignoring error while closing SQL Server connection: {e}")

    def _get_db_type(self) -> str:
        return "sqlserver"
