"""
Property-based tests for member partitioning and transaction reconciliation.

Tests properties related to:
- Partition completeness and disjointness
- Idempotence of repeated passes
- Novel transaction selection by composite key
"""

from datetime import datetime
from decimal import Decimal

from hypothesis import given, settings, strategies as st
from prometheus_client import CollectorRegistry

from src.member_sync.engine import ReconciliationEngine
from src.member_sync.member_diff import iter_source_pages, partition_members
from src.member_sync.metrics import SyncMetrics
from src.member_sync.models import MemberRecord, PassStatus, SourceMemberRow, TransactionRecord
from src.member_sync.transactions import novel_transactions
from tests.fakes import FakeSourceReader, FakeTargetStore, active_doc, member_row

codes = st.text(alphabet="ABC0123", min_size=1, max_size=4)
names = st.text(alphabet="abcdef ", min_size=1, max_size=8).map(str.strip).filter(bool)
balances = st.decimals(min_value=-1000, max_value=1000, places=2, allow_nan=False)

source_rows = st.lists(
    st.builds(SourceMemberRow, code=codes, name=names, balance=balances),
    max_size=25,
)


def stored(code):
    return MemberRecord(id=f"id-{code}", code=code, name="Stored")


def make_engine(reader, store, **options):
    return ReconciliationEngine(
        reader,
        store,
        batch_size=options.pop("batch_size", 3),
        lookup_chunk_size=options.pop("lookup_chunk_size", 4),
        metrics=SyncMetrics(CollectorRegistry()),
        password_hasher=lambda password: "hashed",
        **options,
    )


# Property: every source code lands in exactly one list
@given(rows=source_rows, existing_codes=st.sets(codes, max_size=10))
def test_partition_complete_and_disjoint(rows, existing_codes):
    partition = partition_members(rows, [stored(c) for c in existing_codes])

    created = [r.code for r in partition.to_create]
    updated = [r.code for r, _ in partition.to_update]

    assert set(created) | set(updated) == {r.code for r in rows}
    assert not set(created) & set(updated)
    assert len(created) == len(set(created))
    assert len(updated) == len(set(updated))
    assert set(updated) <= existing_codes
    assert not set(created) & existing_codes


# Property: an update is always paired with the stored member of the same code
@given(rows=source_rows, existing_codes=st.sets(codes, max_size=10))
def test_update_pairs_match_by_code(rows, existing_codes):
    partition = partition_members(rows, [stored(c) for c in existing_codes])

    for row, member in partition.to_update:
        assert member.code == row.code


# Property: the last row of a repeated code wins
@given(rows=source_rows)
def test_duplicate_codes_keep_latest_row(rows):
    partition = partition_members(rows, [])

    latest = {}
    for row in rows:
        latest[row.code] = row
    assert {r.code: r for r in partition.to_create} == latest


# Property: paging yields every row exactly once, whatever the page size
@given(rows=source_rows, batch_size=st.integers(min_value=1, max_value=30))
def test_paging_covers_population(rows, batch_size):
    unique = list({r.code: r for r in rows}.values())
    reader = FakeSourceReader(unique)

    fetched = [row for page in iter_source_pages(reader, batch_size) for row in page]

    assert sorted(r.code for r in fetched) == sorted(r.code for r in unique)
    assert all(limit == batch_size for _, limit in reader.page_calls)


def record(number, doc_type="FAC", member_id="m-1"):
    return TransactionRecord(
        document_number=number,
        document_type=doc_type,
        counterparty_code="C1",
        member_id=member_id,
        member_code="A001",
        posting_date=datetime(2024, 1, 1),
        balance=Decimal("1.00"),
    )


doc_numbers = st.text(alphabet="0123456789", min_size=1, max_size=3)


# Property: novel transactions are unique and never already stored
@given(candidates=st.lists(doc_numbers, max_size=20), existing=st.lists(doc_numbers, max_size=20))
def test_novel_transactions_exclude_existing(candidates, existing):
    stored_records = [record(n) for n in existing]

    novel = novel_transactions([record(n) for n in candidates], stored_records)

    novel_keys = [r.key for r in novel]
    assert len(novel_keys) == len(set(novel_keys))
    assert not set(novel_keys) & {r.key for r in stored_records}
    assert {r.document_number for r in novel} == set(candidates) - set(existing)


# Property: a second pass over unchanged data writes nothing new
@settings(max_examples=30, deadline=None)
@given(
    rows=source_rows,
    pre_existing=st.sets(codes, max_size=5),
    docs_per_member=st.integers(min_value=0, max_value=3),
)
def test_repeated_pass_is_idempotent(rows, pre_existing, docs_per_member):
    unique = list({r.code: r for r in rows}.values())
    reader = FakeSourceReader(unique)
    store = FakeTargetStore()
    for code in pre_existing:
        store.add_member(code)
    for row in unique:
        reader.active[row.code] = [
            active_doc(f"INV-{i}", row.code) for i in range(docs_per_member)
        ]

    engine = make_engine(reader, store)
    first = engine.run_pass()
    members_after_first = {code: (m.id, m.name, m.balance) for code, m in store.members.items()}
    transactions_after_first = set(store.transactions)

    second = engine.run_pass()

    assert first.status is PassStatus.SUCCESS
    assert second.status is PassStatus.SUCCESS
    assert second.created == 0
    assert second.transactions_inserted == 0
    assert second.transactions_deleted == 0
    assert {code: (m.id, m.name, m.balance) for code, m in store.members.items()} == members_after_first
    assert set(store.transactions) == transactions_after_first
    assert len(store.transactions) == len(unique) * docs_per_member


# Property: one failing member never changes the outcome of the others
@settings(max_examples=30, deadline=None)
@given(rows=source_rows.filter(lambda r: len({row.code for row in r}) >= 2), data=st.data())
def test_failure_isolated_to_member(rows, data):
    unique = list({r.code: r for r in rows}.values())
    failing = data.draw(st.sampled_from([r.code for r in unique]))
    reader = FakeSourceReader(unique)
    store = FakeTargetStore()
    store.fail_create_for.add(failing)

    result = make_engine(reader, store).run_pass()

    assert result.status is PassStatus.PARTIAL
    assert result.failed == 1
    assert set(store.members) == {r.code for r in unique} - {failing}


# Property: balances are stored with the configured sign
@given(balance=balances, invert=st.booleans())
def test_member_balance_sign(balance, invert):
    reader = FakeSourceReader([member_row("A001", balance=str(balance))])
    store = FakeTargetStore()

    make_engine(reader, store, invert_member_balance=invert).run_pass()

    expected = -balance if invert else balance
    assert store.members["A001"].balance == expected
