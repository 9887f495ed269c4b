"""
Per-member transaction reconciliation.

Two passes against the legacy database, always in this order:

1. Cancellation: every canceled legacy document is deleted from the store
   by composite key (document number, type, counterparty, member id).
2. Active: every active legacy document whose key is not yet stored is
   bulk-inserted. Stored transactions are never updated. Documents with no
   posting date are skipped and counted, not inserted.

Clearing canceled keys first means a document that was canceled and then
reissued under the same number is removed and re-created instead of being
kept as stale data.
"""

import logging
import threading
from collections.abc import Iterable
from decimal import Decimal

from opentelemetry import trace

from src.utils.tracing import add_span_attributes, trace_operation

from .exceptions import MemberTimeoutError
from .models import (
    MemberRecord,
    SourceTransactionRow,
    TransactionKey,
    TransactionRecord,
    TransactionSyncResult,
    normalize_posting_date,
)

logger = logging.getLogger(__name__)


def transaction_balance(row: SourceTransactionRow, invert: bool = False) -> Decimal:
    """Sum of the two legacy amount fields; missing amounts count as zero."""
    total = (row.amount1 or Decimal("0")) + (row.amount2 or Decimal("0"))
    return -total if invert else total


def to_transaction_record(
    row: SourceTransactionRow,
    member: MemberRecord,
    invert_balance: bool = False,
) -> TransactionRecord:
    discount = row.discount.strip() if row.discount else ""
    return TransactionRecord(
        document_number=row.document_number,
        document_type=row.document_type,
        counterparty_code=row.counterparty_code,
        member_id=member.id,
        member_code=row.member_code or member.code,
        discount=discount or "0",
        posting_date=normalize_posting_date(row.posting_date),
        balance=transaction_balance(row, invert_balance),
    )


def novel_transactions(
    candidates: Iterable[TransactionRecord],
    existing: Iterable[TransactionRecord],
) -> list[TransactionRecord]:
    """Candidates whose composite key is not already stored, one per key."""
    seen: set[TransactionKey] = {record.key for record in existing}
    novel = []
    for candidate in candidates:
        if candidate.key in seen:
            continue
        seen.add(candidate.key)
        novel.append(candidate)
    return novel


class TransactionReconciler:
    """Reconciles one member's stored transactions against the legacy documents."""

    def __init__(self, reader, store, invert_balance: bool = False):
        """
        Initialize the reconciler.

        Args:
            reader: Source reader (list_active_transactions, list_canceled_transactions)
            store: Target store (find_transactions_by_composite_keys,
                   bulk_insert_transactions, bulk_delete_transactions)
            invert_balance: Negate the summed legacy amounts
        """
        self.reader = reader
        self.store = store
        self.invert_balance = invert_balance

    @staticmethod
    def _check_cancelled(member: MemberRecord, cancel_token: threading.Event | None) -> None:
        if cancel_token is not None and cancel_token.is_set():
            raise MemberTimeoutError(member.code, "reconciliation cancelled after timeout")

    def reconcile(
        self,
        member: MemberRecord,
        cancel_token: threading.Event | None = None,
    ) -> TransactionSyncResult:
        """
        Reconcile the member's transactions.

        Args:
            member: Stored member (its id owns the transactions)
            cancel_token: Set by the engine when the member timed out

        Returns:
            Counts of deleted, inserted, skipped and already present rows

        Raises:
            SourceUnavailableError: If a legacy query fails
            TargetStoreError: If a store write fails
            MemberTimeoutError: If cancel_token was set mid-way
        """
        result = TransactionSyncResult()

        with trace_operation(
            "reconcile_transactions",
            kind=trace.SpanKind.INTERNAL,
            member_code=member.code,
            member_id=member.id,
        ):
            self._check_cancelled(member, cancel_token)
            result.deleted = self._remove_canceled(member)

            self._check_cancelled(member, cancel_token)
            self._insert_active(member, result, cancel_token)

            add_span_attributes(**result.to_dict())

        if result.deleted or result.inserted:
            logger.info(
                f"Member {member.code}: {result.inserted} transaction(s) inserted, "
                f"{result.deleted} deleted"
            )
        return result

    def _remove_canceled(self, member: MemberRecord) -> int:
        canceled = self.reader.list_canceled_transactions(member.code)
        if not canceled:
            return 0

        keys = [row.key_for(member.id) for row in canceled]
        return self.store.bulk_delete_transactions(keys)

    def _insert_active(
        self,
        member: MemberRecord,
        result: TransactionSyncResult,
        cancel_token: threading.Event | None,
    ) -> None:
        rows = self.reader.list_active_transactions(member.code)

        candidates = []
        undated = []
        orphaned = 0
        for row in rows:
            if row.posting_date is None:
                undated.append(row.document_number)
                continue
            record = to_transaction_record(row, member, self.invert_balance)
            if not record.member_id:
                orphaned += 1
                continue
            candidates.append(record)

        if undated:
            logger.warning(
                f"Member {member.code}: skipped {len(undated)} document(s) "
                f"without a posting date: {', '.join(undated)}"
            )
        if orphaned:
            logger.warning(
                f"Member {member.code}: skipped {orphaned} transaction(s) "
                f"without an owning member id"
            )
        result.skipped = len(undated) + orphaned
        if not candidates:
            return

        existing = self.store.find_transactions_by_composite_keys(
            member.id, [c.key for c in candidates]
        )
        novel = novel_transactions(candidates, existing)
        result.already_present = len(candidates) - len(novel)

        if novel:
            self._check_cancelled(member, cancel_token)
            result.inserted = self.store.bulk_insert_transactions(novel)
