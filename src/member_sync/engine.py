"""
Reconciliation engine.

Runs one pass of the legacy-to-store member sync:

    fetch all legacy member pages
      -> partition by code against the stored members
      -> for each member: create or update, then reconcile its transactions

Every member runs behind its own failure boundary: an error (or timeout)
for one member is logged, recorded in the pass result, and the pass moves
on. Only a failure before partitioning aborts the pass. run_pass never
raises for source, store or member errors, and never runs concurrently
with itself.
"""

import logging
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

from src.utils.logging import ContextLogger
from src.utils.tracing import add_span_attributes, add_span_event, trace_operation

from .config import SyncSettings
from .exceptions import MemberTimeoutError, PassLevelFailure
from .member_diff import (
    MemberPartition,
    build_create_payload,
    build_update_payload,
    fetch_all_source_members,
    partition_members,
)
from .metrics import SyncMetrics
from .models import (
    MemberAction,
    MemberRecord,
    MemberSyncResult,
    PassResult,
    PassStatus,
    SourceMemberRow,
)
from .passwords import default_password_hash
from .single_flight import SingleFlightGuard
from .transactions import TransactionReconciler

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Orchestrates member and transaction reconciliation passes.

    The reader and store are injected so that the engine never owns a
    connection; see member_sync.bootstrap for the production wiring.
    """

    def __init__(
        self,
        reader: Any,
        store: Any,
        batch_size: int = 1000,
        lookup_chunk_size: int = 1000,
        member_timeout: float | None = None,
        default_password: str | None = None,
        invert_member_balance: bool = True,
        invert_transaction_balance: bool = False,
        metrics: SyncMetrics | None = None,
        guard: SingleFlightGuard | None = None,
        password_hasher: Callable[[str | None], str] = default_password_hash,
    ):
        """
        Initialize the engine.

        Args:
            reader: Source reader (see member_sync.source.LegacySourceReader)
            store: Target store (see member_sync.target.PostgresTargetStore)
            batch_size: Legacy member page size
            lookup_chunk_size: Codes per stored-member lookup
            member_timeout: Seconds allowed per member (None = unbounded)
            default_password: Credential for created members (None = random)
            invert_member_balance: Negate the legacy pending amount
            invert_transaction_balance: Negate summed transaction amounts
            metrics: Prometheus metrics (default: SyncMetrics on the global registry)
            guard: Single-flight guard (default: a private one)
            password_hasher: Callable producing the stored credential hash
        """
        self.reader = reader
        self.store = store
        self.batch_size = batch_size
        self.lookup_chunk_size = lookup_chunk_size
        self.member_timeout = member_timeout
        self.default_password = default_password
        self.invert_member_balance = invert_member_balance
        self.metrics = metrics or SyncMetrics()
        self.guard = guard or SingleFlightGuard("member_sync_pass")
        self.password_hasher = password_hasher
        self.transaction_reconciler = TransactionReconciler(
            reader, store, invert_balance=invert_transaction_balance
        )
        self._executor: ThreadPoolExecutor | None = None
        # workers of timed-out members, keyed to their member code
        self._abandoned: dict[Future, str] = {}
        self._pass_logger = ContextLogger(__name__)

    @classmethod
    def from_settings(
        cls,
        reader: Any,
        store: Any,
        settings: SyncSettings,
        metrics: SyncMetrics | None = None,
    ) -> "ReconciliationEngine":
        return cls(
            reader,
            store,
            batch_size=settings.batch_size,
            lookup_chunk_size=settings.lookup_chunk_size,
            member_timeout=settings.member_timeout_seconds,
            default_password=settings.default_password,
            invert_member_balance=settings.invert_member_balance,
            invert_transaction_balance=settings.invert_transaction_balance,
            metrics=metrics,
        )

    @property
    def pass_in_progress(self) -> bool:
        return self.guard.in_progress or any(not f.done() for f in list(self._abandoned))

    def _lingering_members(self) -> list[str]:
        """Codes of timed-out members whose worker is still running."""
        for future in [f for f in self._abandoned if f.done()]:
            del self._abandoned[future]
        return sorted(self._abandoned.values())

    def run_pass(self) -> PassResult:
        """
        Run one reconciliation pass now.

        Returns immediately with status SKIPPED when another pass holds the
        single-flight guard, or while a member abandoned by an earlier pass
        is still running its queries.

        Returns:
            PassResult describing the pass
        """
        pass_id = uuid.uuid4().hex[:12]
        started_at = datetime.now(UTC)

        with self.guard.hold() as acquired:
            lingering = self._lingering_members() if acquired else []
            if acquired and not lingering:
                result = self._execute_pass(pass_id, started_at)
            else:
                if lingering:
                    error = f"Timed-out member(s) still running: {', '.join(lingering)}"
                    logger.warning(f"Skipping member sync pass. {error}")
                else:
                    error = "Previous pass still running"
                result = PassResult(
                    pass_id=pass_id,
                    status=PassStatus.SKIPPED,
                    started_at=started_at,
                    finished_at=started_at,
                    error=error,
                )

        self.metrics.record_pass(result)
        return result

    def _execute_pass(self, pass_id: str, started_at: datetime) -> PassResult:
        result = PassResult(pass_id=pass_id, status=PassStatus.SUCCESS, started_at=started_at)
        pass_logger = ContextLogger(__name__, pass_id=pass_id)
        self._pass_logger = pass_logger
        pass_logger.info("Starting member sync pass")

        with trace_operation("sync_pass", kind=trace.SpanKind.INTERNAL, pass_id=pass_id):
            try:
                source_rows, partition = self._prepare()
                result.source_rows = len(source_rows)

                if partition.is_empty:
                    pass_logger.info("No members to sync")
                else:
                    password_hash = (
                        self.password_hasher(self.default_password)
                        if partition.to_create
                        else None
                    )
                    result.members = self._sync_members(partition, password_hash, pass_logger)

                result.status = PassStatus.PARTIAL if result.failed else PassStatus.SUCCESS

            except Exception as e:
                result.status = PassStatus.FAILED
                result.error = f"{type(e).__name__}: {e}"
                pass_logger.error(f"Member sync pass aborted: {result.error}", exc_info=True)

            finally:
                self._shutdown_executor()
                result.finished_at = datetime.now(UTC)

            add_span_attributes(
                status=result.status.value,
                created=result.created,
                updated=result.updated,
                failed=result.failed,
            )

        pass_logger.info(
            f"Member sync pass {result.status.value}: "
            f"{result.source_rows} legacy rows, {result.created} created, "
            f"{result.updated} updated, {result.failed} failed, "
            f"{result.transactions_inserted} transaction(s) inserted, "
            f"{result.transactions_deleted} deleted "
            f"in {result.duration_seconds:.2f}s"
        )
        return result

    def _prepare(self) -> tuple[list[SourceMemberRow], MemberPartition]:
        """Fetch the legacy population and partition it; any failure aborts the pass."""
        try:
            source_rows = fetch_all_source_members(self.reader, self.batch_size)
        except Exception as e:
            raise PassLevelFailure(f"Cannot fetch legacy members: {e}") from e

        codes = list(dict.fromkeys(row.code for row in source_rows))
        try:
            existing = self._find_existing(codes)
        except Exception as e:
            raise PassLevelFailure(f"Cannot load stored members: {e}") from e

        partition = partition_members(source_rows, existing)
        logger.info(
            f"Partitioned {len(codes)} member(s): "
            f"{len(partition.to_create)} to create, {len(partition.to_update)} to update"
        )
        return source_rows, partition

    def _find_existing(self, codes: Sequence[str]) -> list[MemberRecord]:
        existing: list[MemberRecord] = []
        for start in range(0, len(codes), self.lookup_chunk_size):
            chunk = codes[start:start + self.lookup_chunk_size]
            existing.extend(self.store.find_members_by_codes(chunk))
        return existing

    def _sync_members(
        self,
        partition: MemberPartition,
        password_hash: str | None,
        pass_logger: ContextLogger,
    ) -> list[MemberSyncResult]:
        results = []
        work = [(row, None) for row in partition.to_create] + list(partition.to_update)

        for row, stored in work:
            member_result = self._run_member(row, stored, password_hash)
            results.append(member_result)
            self.metrics.record_member(member_result)

            if not member_result.success:
                add_span_event(
                    "member_failed",
                    member_code=row.code,
                    error_type=member_result.error_type,
                )
                pass_logger.warning(
                    f"Member {row.code} failed, continuing",
                    member_code=row.code,
                    error_type=member_result.error_type,
                )

        return results

    def _run_member(
        self,
        row: SourceMemberRow,
        stored: MemberRecord | None,
        password_hash: str | None,
    ) -> MemberSyncResult:
        if self.member_timeout is None:
            return self.sync_member(row, stored, password_hash)

        cancel_token = threading.Event()
        start = time.monotonic()
        future = self._get_executor().submit(
            self.sync_member, row, stored, password_hash, cancel_token
        )
        try:
            return future.result(timeout=self.member_timeout)
        except FutureTimeoutError:
            cancel_token.set()
            self._abandoned[future] = row.code
            self._abandon_executor()
            error = MemberTimeoutError(row.code, f"exceeded {self.member_timeout}s time budget")
            logger.error(str(error))
            return MemberSyncResult(
                code=row.code,
                action=MemberAction.CREATE if stored is None else MemberAction.UPDATE,
                success=False,
                member_id=stored.id if stored else None,
                error=str(error),
                error_type=type(error).__name__,
                duration_seconds=time.monotonic() - start,
            )

    def sync_member(
        self,
        row: SourceMemberRow,
        stored: MemberRecord | None,
        password_hash: str | None = None,
        cancel_token: threading.Event | None = None,
    ) -> MemberSyncResult:
        """
        Create or update one member, then reconcile its transactions.

        Never raises: any failure is returned in the MemberSyncResult.

        Args:
            row: Legacy member row
            stored: Existing stored member, or None to create it
            password_hash: Credential hash for a created member
            cancel_token: Set by the engine when the member timed out

        Returns:
            MemberSyncResult for this member
        """
        action = MemberAction.CREATE if stored is None else MemberAction.UPDATE
        result = MemberSyncResult(
            code=row.code,
            action=action,
            success=False,
            member_id=stored.id if stored else None,
        )
        member_logger = self._pass_logger.bind(member_code=row.code, action=action.value)
        start = time.monotonic()

        try:
            with trace_operation(
                "sync_member",
                kind=trace.SpanKind.INTERNAL,
                member_code=row.code,
                action=action.value,
            ):
                if stored is None:
                    if password_hash is None:
                        password_hash = self.password_hasher(self.default_password)
                    member = self.store.create_member(
                        build_create_payload(row, password_hash, self.invert_member_balance)
                    )
                else:
                    member = self.store.update_member(
                        row.code, build_update_payload(row, self.invert_member_balance)
                    )
                result.member_id = member.id

                result.transactions = self.transaction_reconciler.reconcile(member, cancel_token)
                result.success = True

        except Exception as e:
            result.error = str(e)
            result.error_type = type(e).__name__
            member_logger.error(
                f"Failed to {action.value} member {row.code}: {result.error_type}: {e}",
                exc_info=True,
            )

        result.duration_seconds = time.monotonic() - start
        return result

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="member-sync"
            )
        return self._executor

    def _abandon_executor(self) -> None:
        # The stuck worker keeps its thread until its query returns; it
        # stops writing at the next cancellation check.
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
