"""
Read-only access to the legacy SQL Server database.

Every query borrows a connection from the injected SQLServerConnectionPool
for the duration of the query only, so a failing member never keeps a
connection checked out. Transient errors are retried with backoff; once
retries are exhausted the error surfaces as SourceUnavailableError.
"""

import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import pyodbc
from opentelemetry import trace

from src.utils.db_pool import ConnectionPoolError, SQLServerConnectionPool
from src.utils.retry import retry_database_operation
from src.utils.sql_safety import quote_schema_table, validate_integer_param
from src.utils.tracing import trace_operation

from .config import LegacySchema
from .exceptions import SourceUnavailableError
from .models import CanceledTransactionRow, SourceMemberRow, SourceTransactionRow

logger = logging.getLogger(__name__)


def _clean(value: Any) -> str | None:
    """Trim a legacy text value, mapping blanks to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LegacySourceReader:
    """Queries for eligible members and their document headers."""

    def __init__(
        self,
        pool: SQLServerConnectionPool,
        schema: LegacySchema | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        """
        Initialize the source reader.

        Args:
            pool: Connection pool for the legacy database
            schema: Legacy table names (default: LegacySchema())
            max_retries: Retries for transient connection errors
            retry_base_delay: Initial backoff delay in seconds
        """
        self.pool = pool
        self.schema = schema or LegacySchema()
        self.schema.validate()

        members = quote_schema_table(self.schema.members_table, "sqlserver")
        pending = quote_schema_table(self.schema.pending_table, "sqlserver")
        documents = quote_schema_table(self.schema.documents_table, "sqlserver")

        # codigo breaks ties between equal names so pages never overlap
        self._members_sql = (
            "SELECT RTRIM(t.codigo) AS code, RTRIM(t.nome) AS name, "
            "RTRIM(t.telemovel) AS phone, RTRIM(t.morada1) AS address1, "
            "RTRIM(t.morada2) AS address2, "
            "CAST(COALESCE(SUM(p.valorpendente), 0) AS DECIMAL(18,2)) AS balance "
            f"FROM {members} t "
            f"LEFT JOIN {pending} p ON p.entidade = t.codigo "
            "WHERE t.PAMBS = 1 AND NULLIF(RTRIM(t.codigo), '') IS NOT NULL "
            "GROUP BY t.codigo, t.nome, t.telemovel, t.morada1, t.morada2 "
            "ORDER BY t.nome, t.codigo "
            "OFFSET ? ROWS FETCH NEXT ? ROWS ONLY"
        )
        self._active_sql = (
            "SELECT numdoc AS document_number, tipodoc AS document_type, "
            "entidade AS counterparty_code, cliente AS member_code, "
            "desconto AS discount, datadoc AS posting_date, "
            "base1 AS amount1, iva1 AS amount2 "
            f"FROM {documents} WHERE cliente = ? AND anulado = 0"
        )
        self._canceled_sql = (
            "SELECT numdoc AS document_number, tipodoc AS document_type, "
            "entidade AS counterparty_code "
            f"FROM {documents} WHERE cliente = ? AND anulado = 1"
        )

        self._execute = retry_database_operation(
            max_retries=max_retries, base_delay=retry_base_delay
        )(self._execute_query)

    def _execute_query(self, sql: str, params: Sequence[Any]) -> list[Any]:
        with self.pool.acquire() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, *params)
                return cursor.fetchall()
            finally:
                cursor.close()

    def _query(self, operation: str, sql: str, params: Sequence[Any], **attributes) -> list[Any]:
        with trace_operation(
            f"legacy_{operation}",
            kind=trace.SpanKind.CLIENT,
            db_system="mssql",
            **attributes,
        ):
            try:
                return self._execute(sql, params)
            except (pyodbc.Error, ConnectionPoolError) as e:
                raise SourceUnavailableError(
                    f"Legacy query '{operation}' failed: {type(e).__name__}: {e}"
                ) from e

    def list_eligible_members(self, offset: int, limit: int) -> list[SourceMemberRow]:
        """
        Fetch one page of eligible members ordered by name.

        Args:
            offset: Number of rows to skip
            limit: Page size

        Returns:
            Up to `limit` member rows; fewer means the last page was reached
        """
        validate_integer_param(offset, "offset")
        validate_integer_param(limit, "limit", min_value=1)

        rows = self._query(
            "list_eligible_members",
            self._members_sql,
            (offset, limit),
            offset=offset,
            limit=limit,
        )

        members = []
        for row in rows:
            code = _clean(row.code)
            if code is None:
                logger.warning("Skipping legacy member row without a code")
                continue
            members.append(
                SourceMemberRow(
                    code=code,
                    name=_clean(row.name) or "",
                    phone=_clean(row.phone),
                    address1=_clean(row.address1),
                    address2=_clean(row.address2),
                    balance=_decimal(row.balance) or Decimal("0"),
                )
            )

        logger.debug(f"Fetched {len(members)} legacy members (offset={offset}, limit={limit})")
        return members

    def list_active_transactions(self, member_code: str) -> list[SourceTransactionRow]:
        """Fetch non-canceled document headers for one member."""
        rows = self._query(
            "list_active_transactions",
            self._active_sql,
            (member_code,),
            member_code=member_code,
        )
        return [
            SourceTransactionRow(
                document_number=_clean(row.document_number) or "",
                document_type=_clean(row.document_type) or "",
                counterparty_code=_clean(row.counterparty_code) or "",
                member_code=_clean(row.member_code) or member_code,
                posting_date=row.posting_date,
                discount=_clean(row.discount),
                amount1=_decimal(row.amount1),
                amount2=_decimal(row.amount2),
            )
            for row in rows
        ]

    def list_canceled_transactions(self, member_code: str) -> list[CanceledTransactionRow]:
        """Fetch canceled document headers for one member."""
        rows = self._query(
            "list_canceled_transactions",
            self._canceled_sql,
            (member_code,),
            member_code=member_code,
        )
        return [
            CanceledTransactionRow(
                document_number=_clean(row.document_number) or "",
                document_type=_clean(row.document_type) or "",
                counterparty_code=_clean(row.counterparty_code) or "",
            )
            for row in rows
        ]
