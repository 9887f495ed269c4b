"""
Member diff stage.

Splits a snapshot of legacy member rows into members that must be created
and members that must be updated, keyed by member code. Nothing in this
module writes anywhere; the engine applies the result.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .models import MemberRecord, MemberStatus, SourceMemberRow

logger = logging.getLogger(__name__)

OPTIONAL_FIELDS = ("phone", "address1", "address2")


@dataclass
class MemberPartition:
    """Disjoint create/update lists produced from one source snapshot."""

    to_create: list[SourceMemberRow] = field(default_factory=list)
    to_update: list[tuple[SourceMemberRow, MemberRecord]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_create and not self.to_update


def iter_source_pages(reader: Any, batch_size: int = 1000) -> Iterator[list[SourceMemberRow]]:
    """
    Yield successive pages of eligible members until a short page is returned.

    Args:
        reader: Object with list_eligible_members(offset, limit)
        batch_size: Rows per page

    Yields:
        Non-empty pages of member rows
    """
    offset = 0
    while True:
        page = reader.list_eligible_members(offset, batch_size)
        if page:
            yield page
        if len(page) < batch_size:
            return
        offset += batch_size


def fetch_all_source_members(reader: Any, batch_size: int = 1000) -> list[SourceMemberRow]:
    """Fetch the whole eligible member population, page by page."""
    rows: list[SourceMemberRow] = []
    pages = 0
    for page in iter_source_pages(reader, batch_size):
        rows.extend(page)
        pages += 1
    logger.info(f"Fetched {len(rows)} legacy members in {pages} page(s)")
    return rows


def deduplicate_by_code(rows: Iterable[SourceMemberRow]) -> list[SourceMemberRow]:
    """Collapse repeated codes, keeping the last row and the first position."""
    latest: dict[str, SourceMemberRow] = {}
    for row in rows:
        if row.code in latest:
            logger.warning(f"Duplicate legacy member code {row.code}, keeping latest row")
        latest[row.code] = row
    return list(latest.values())


def partition_members(
    source_rows: Iterable[SourceMemberRow],
    existing: Iterable[MemberRecord],
) -> MemberPartition:
    """
    Partition source rows against stored members by code.

    Args:
        source_rows: Member rows from the legacy database
        existing: Stored members whose codes intersect the source rows

    Returns:
        MemberPartition with to_create and to_update
    """
    existing_by_code = {member.code: member for member in existing}
    partition = MemberPartition()

    for row in deduplicate_by_code(source_rows):
        stored = existing_by_code.get(row.code)
        if stored is None:
            partition.to_create.append(row)
        else:
            partition.to_update.append((row, stored))

    return partition


def member_balance(row: SourceMemberRow, invert: bool = True) -> Decimal:
    """Stored balance for a source row under the configured sign convention."""
    balance = row.balance or Decimal("0")
    return -balance if invert else balance


def build_create_payload(
    row: SourceMemberRow,
    password_hash: str,
    invert_balance: bool = True,
) -> dict[str, Any]:
    return {
        "code": row.code,
        "name": row.name,
        "phone": row.phone,
        "address1": row.address1,
        "address2": row.address2,
        "status": MemberStatus.ACTIVE.value,
        "balance": member_balance(row, invert_balance),
        "family_head_id": None,
        "password_hash": password_hash,
    }


def build_update_payload(row: SourceMemberRow, invert_balance: bool = True) -> dict[str, Any]:
    """
    Fields to overwrite on an existing member.

    Name and balance always come from the latest snapshot. Optional fields
    are only written when the source supplies a value, so a blank legacy
    phone or address never erases a stored one.
    """
    payload: dict[str, Any] = {
        "name": row.name,
        "balance": member_balance(row, invert_balance),
    }
    for name in OPTIONAL_FIELDS:
        value = getattr(row, name)
        if value is not None and value.strip():
            payload[name] = value
    return payload
