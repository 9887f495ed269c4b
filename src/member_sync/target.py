"""
Application store (PostgreSQL) access for members and transactions.

Each public method runs in its own connection and database transaction:
committed when the method returns, rolled back when it raises. Transactions
are looked up and deleted by composite natural key only.
"""

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import psycopg2
import psycopg2.extras
from opentelemetry import trace

from src.utils.db_pool import ConnectionPoolError, PostgresConnectionPool
from src.utils.sql_safety import quote_columns, quote_identifier
from src.utils.tracing import trace_operation

from .config import TargetSchema
from .exceptions import TargetStoreError
from .models import MemberRecord, MemberStatus, TransactionKey, TransactionRecord

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = (
    "id", "code", "name", "phone", "address1", "address2",
    "status", "balance", "family_head_id",
)
CREATABLE_MEMBER_FIELDS = frozenset(
    ("code", "name", "phone", "address1", "address2",
     "status", "balance", "family_head_id", "password_hash")
)
# status and family_head_id belong to the administrative API
UPDATABLE_MEMBER_FIELDS = frozenset(("name", "phone", "address1", "address2", "balance"))

TRANSACTION_COLUMNS = (
    "id", "document_number", "document_type", "counterparty_code",
    "member_id", "member_code", "discount", "posting_date", "balance",
)
KEY_COLUMNS = ("document_number", "document_type", "counterparty_code", "member_id")


def _row_to_member(row: dict[str, Any]) -> MemberRecord:
    return MemberRecord(
        id=str(row["id"]),
        code=row["code"],
        name=row["name"],
        phone=row.get("phone"),
        address1=row.get("address1"),
        address2=row.get("address2"),
        status=MemberStatus(row.get("status") or MemberStatus.ACTIVE.value),
        balance=Decimal(row["balance"]) if row.get("balance") is not None else Decimal("0"),
        family_head_id=str(row["family_head_id"]) if row.get("family_head_id") else None,
    )


def _row_to_transaction(row: dict[str, Any]) -> TransactionRecord:
    return TransactionRecord(
        id=str(row["id"]),
        document_number=row["document_number"],
        document_type=row["document_type"],
        counterparty_code=row["counterparty_code"],
        member_id=str(row["member_id"]),
        member_code=row["member_code"],
        discount=row.get("discount") or "0",
        posting_date=row["posting_date"],
        balance=Decimal(row["balance"]),
    )


class PostgresTargetStore:
    """Keyed lookup, create, update and bulk writes against the application store."""

    def __init__(
        self,
        pool: PostgresConnectionPool,
        schema: TargetSchema | None = None,
        page_size: int = 500,
    ):
        """
        Initialize the target store.

        Args:
            pool: Connection pool for the application database
            schema: Target table names (default: TargetSchema())
            page_size: Rows per statement for bulk operations
        """
        self.pool = pool
        self.schema = schema or TargetSchema()
        self.schema.validate()
        self.page_size = page_size
        self._members = quote_identifier(self.schema.members_table, "postgresql")
        self._transactions = quote_identifier(self.schema.transactions_table, "postgresql")

    @contextmanager
    def _transaction(self, operation: str, **attributes) -> Iterator[Any]:
        with trace_operation(
            f"store_{operation}",
            kind=trace.SpanKind.CLIENT,
            db_system="postgresql",
            **attributes,
        ):
            try:
                with self.pool.acquire() as conn:
                    with conn:
                        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                            yield cursor
            except (psycopg2.Error, ConnectionPoolError) as e:
                raise TargetStoreError(
                    f"Store operation '{operation}' failed: {type(e).__name__}: {e}"
                ) from e

    def find_members_by_codes(self, codes: Sequence[str]) -> list[MemberRecord]:
        """Return the stored members whose code is in `codes`."""
        if not codes:
            return []

        columns = ", ".join(MEMBER_COLUMNS)
        with self._transaction("find_members_by_codes", code_count=len(codes)) as cursor:
            cursor.execute(
                f"SELECT {columns} FROM {self._members} WHERE code = ANY(%s)",
                (list(codes),),
            )
            rows = cursor.fetchall()

        return [_row_to_member(row) for row in rows]

    def create_member(self, data: dict[str, Any]) -> MemberRecord:
        """
        Insert a new member.

        Args:
            data: Column values; must include code and name

        Returns:
            The stored member with its generated id

        Raises:
            ValueError: If data names a column that cannot be set
            TargetStoreError: If the insert fails
        """
        unknown = set(data) - CREATABLE_MEMBER_FIELDS
        if unknown:
            raise ValueError(f"Cannot create member with fields: {sorted(unknown)}")
        if not data.get("code") or "name" not in data:
            raise ValueError("Member code and name are required")

        values = dict(data)
        values.setdefault("status", MemberStatus.ACTIVE.value)
        if isinstance(values["status"], MemberStatus):
            values["status"] = values["status"].value
        now = datetime.now(UTC)
        values.update(id=str(uuid.uuid4()), created_at=now, updated_at=now)

        columns = list(values)
        placeholders = ", ".join(["%s"] * len(columns))
        returning = ", ".join(MEMBER_COLUMNS)

        with self._transaction("create_member", member_code=data["code"]) as cursor:
            cursor.execute(
                f"INSERT INTO {self._members} ({quote_columns(columns, 'postgresql')}) "
                f"VALUES ({placeholders}) RETURNING {returning}",
                [values[c] for c in columns],
            )
            row = cursor.fetchone()

        return _row_to_member(row)

    def update_member(self, code: str, data: dict[str, Any]) -> MemberRecord:
        """
        Overwrite mutable fields of an existing member.

        Args:
            code: Natural key of the member
            data: Column values; only name, phone, address1, address2, balance

        Returns:
            The stored member after the update

        Raises:
            ValueError: If data names a column the sync may not touch
            TargetStoreError: If the member does not exist or the update fails
        """
        unknown = set(data) - UPDATABLE_MEMBER_FIELDS
        if unknown:
            raise ValueError(f"Cannot update member fields: {sorted(unknown)}")

        values = dict(data)
        values["updated_at"] = datetime.now(UTC)
        assignments = ", ".join(
            f"{quote_identifier(column, 'postgresql')} = %s" for column in values
        )
        returning = ", ".join(MEMBER_COLUMNS)

        with self._transaction("update_member", member_code=code) as cursor:
            cursor.execute(
                f"UPDATE {self._members} SET {assignments} WHERE code = %s RETURNING {returning}",
                [*values.values(), code],
            )
            row = cursor.fetchone()

        if row is None:
            raise TargetStoreError(f"Member {code} not found for update")
        return _row_to_member(row)

    def find_transactions_by_composite_keys(
        self, member_id: str, keys: Sequence[TransactionKey]
    ) -> list[TransactionRecord]:
        """Return the member's stored transactions matching any of `keys`."""
        wanted = {k for k in keys if k.member_id == member_id}
        if not wanted:
            return []

        columns = ", ".join(f"t.{c}" for c in TRANSACTION_COLUMNS)
        key_columns = ", ".join(KEY_COLUMNS)
        join = " AND ".join(f"t.{c} = k.{c}" for c in KEY_COLUMNS)

        with self._transaction(
            "find_transactions", member_id=member_id, key_count=len(wanted)
        ) as cursor:
            rows = psycopg2.extras.execute_values(
                cursor,
                f"SELECT {columns} FROM {self._transactions} t "
                f"JOIN (VALUES %s) AS k({key_columns}) ON {join}",
                [tuple(k) for k in wanted],
                page_size=self.page_size,
                fetch=True,
            )

        return [_row_to_transaction(row) for row in rows]

    def bulk_insert_transactions(self, records: Sequence[TransactionRecord]) -> int:
        """Insert new transactions; returns the number of rows written."""
        if not records:
            return 0

        now = datetime.now(UTC)
        rows = [
            (
                record.id or str(uuid.uuid4()),
                record.document_number,
                record.document_type,
                record.counterparty_code,
                record.member_id,
                record.member_code,
                record.discount,
                record.posting_date,
                record.balance,
                now,
            )
            for record in records
        ]

        with self._transaction("bulk_insert_transactions", row_count=len(rows)) as cursor:
            psycopg2.extras.execute_values(
                cursor,
                f"INSERT INTO {self._transactions} "
                f"({', '.join(TRANSACTION_COLUMNS)}, created_at) VALUES %s",
                rows,
                page_size=self.page_size,
            )

        return len(rows)

    def bulk_delete_transactions(self, keys: Sequence[TransactionKey]) -> int:
        """Delete transactions matching any of `keys`; returns rows deleted."""
        unique_keys = set(keys)
        if not unique_keys:
            return 0

        key_columns = ", ".join(KEY_COLUMNS)
        match = " AND ".join(f"t.{c} = k.{c}" for c in KEY_COLUMNS)

        with self._transaction("bulk_delete_transactions", key_count=len(unique_keys)) as cursor:
            deleted = psycopg2.extras.execute_values(
                cursor,
                f"DELETE FROM {self._transactions} t "
                f"USING (VALUES %s) AS k({key_columns}) WHERE {match} RETURNING t.id",
                [tuple(k) for k in unique_keys],
                page_size=self.page_size,
                fetch=True,
            )

        return len(deleted)
