"""
Record types shared by the member sync stages.

Source rows are what the legacy database hands us (already trimmed),
records are what lives in the application store. Transactions are matched
exclusively by their composite natural key, never by surrogate id.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, NamedTuple


class MemberStatus(str, Enum):
    """Member status owned by the administrative API."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class TransactionKey(NamedTuple):
    """Composite natural key of a transaction."""

    document_number: str
    document_type: str
    counterparty_code: str
    member_id: str


@dataclass(frozen=True)
class SourceMemberRow:
    """Eligible member row read from the legacy database."""

    code: str
    name: str
    phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    balance: Decimal = Decimal("0")


@dataclass(frozen=True)
class SourceTransactionRow:
    """Active document header row read from the legacy database."""

    document_number: str
    document_type: str
    counterparty_code: str
    member_code: str
    posting_date: datetime | None
    discount: str | None = None
    amount1: Decimal | None = None
    amount2: Decimal | None = None


@dataclass(frozen=True)
class CanceledTransactionRow:
    """Canceled document header row; only the key fields are needed."""

    document_number: str
    document_type: str
    counterparty_code: str

    def key_for(self, member_id: str) -> TransactionKey:
        return TransactionKey(
            self.document_number,
            self.document_type,
            self.counterparty_code,
            member_id,
        )


@dataclass
class MemberRecord:
    """Member as stored in the application database."""

    id: str
    code: str
    name: str
    phone: str | None = None
    address1: str | None = None
    address2: str | None = None
    status: MemberStatus = MemberStatus.ACTIVE
    balance: Decimal = Decimal("0")
    family_head_id: str | None = None


@dataclass
class TransactionRecord:
    """Transaction as stored (or about to be stored) in the application database."""

    document_number: str
    document_type: str
    counterparty_code: str
    member_id: str
    member_code: str
    posting_date: datetime
    balance: Decimal
    discount: str = "0"
    id: str | None = None

    @property
    def key(self) -> TransactionKey:
        return TransactionKey(
            self.document_number,
            self.document_type,
            self.counterparty_code,
            self.member_id,
        )


def normalize_posting_date(value: datetime) -> datetime:
    """
    Normalize a legacy posting date to a UTC-aware timestamp.

    The legacy database stores naive local datetimes; they are taken as UTC
    so that the same source value always maps to the same stored value.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass
class TransactionSyncResult:
    """Outcome of reconciling one member's transactions."""

    deleted: int = 0
    inserted: int = 0
    skipped: int = 0
    already_present: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "deleted": self.deleted,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "already_present": self.already_present,
        }


class MemberAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass
class MemberSyncResult:
    """Structured outcome of one member's create/update + reconcile pipeline."""

    code: str
    action: MemberAction
    success: bool
    member_id: str | None = None
    transactions: TransactionSyncResult = field(default_factory=TransactionSyncResult)
    error: str | None = None
    error_type: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "action": self.action.value,
            "success": self.success,
            "member_id": self.member_id,
            "transactions": self.transactions.to_dict(),
            "error": self.error,
            "error_type": self.error_type,
            "duration_seconds": round(self.duration_seconds, 4),
        }


class PassStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class PassResult:
    """Outcome of one full reconciliation pass."""

    pass_id: str
    status: PassStatus
    started_at: datetime
    finished_at: datetime | None = None
    source_rows: int = 0
    members: list[MemberSyncResult] = field(default_factory=list)
    error: str | None = None

    @property
    def created(self) -> int:
        return sum(
            1 for m in self.members
            if m.success and m.action is MemberAction.CREATE
        )

    @property
    def updated(self) -> int:
        return sum(
            1 for m in self.members
            if m.success and m.action is MemberAction.UPDATE
        )

    @property
    def failed(self) -> int:
        return sum(1 for m in self.members if not m.success)

    @property
    def transactions_inserted(self) -> int:
        return sum(m.transactions.inserted for m in self.members)

    @property
    def transactions_deleted(self) -> int:
        return sum(m.transactions.deleted for m in self.members)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass_id": self.pass_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 4),
            "source_rows": self.source_rows,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "transactions_inserted": self.transactions_inserted,
            "transactions_deleted": self.transactions_deleted,
            "error": self.error,
            "members": [m.to_dict() for m in self.members],
        }
