"""
Unit tests for the legacy SQL Server reader

The pool and cursor are mocked; rows are attribute objects like pyodbc.Row.
"""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pyodbc
import pytest

from src.member_sync.config import LegacySchema
from src.member_sync.exceptions import ConfigurationError, SourceUnavailableError
from src.member_sync.source import LegacySourceReader
from src.utils.db_pool import PoolExhaustedError


def make_pool(rows=None, side_effect=None):
    pool = MagicMock()
    conn = MagicMock()
    cursor = MagicMock()
    pool.acquire.return_value.__enter__.return_value = conn
    conn.cursor.return_value = cursor
    cursor.fetchall.return_value = rows or []
    if side_effect is not None:
        cursor.execute.side_effect = side_effect
    return pool, cursor


def member(code, name="Ana", phone=None, address1=None, address2=None, balance=Decimal("0")):
    return SimpleNamespace(
        code=code, name=name, phone=phone,
        address1=address1, address2=address2, balance=balance,
    )


class TestListEligibleMembers:
    """Test member paging query"""

    def test_maps_and_trims_rows(self):
        pool, cursor = make_pool([
            member("A001  ", "Ana Silva ", phone=" 912345678", address1="   ",
                   balance=Decimal("12.50")),
        ])
        reader = LegacySourceReader(pool)

        rows = reader.list_eligible_members(offset=0, limit=100)

        assert len(rows) == 1
        row = rows[0]
        assert row.code == "A001"
        assert row.name == "Ana Silva"
        assert row.phone == "912345678"
        assert row.address1 is None
        assert row.balance == Decimal("12.50")

    def test_passes_offset_and_limit_as_parameters(self):
        pool, cursor = make_pool()
        reader = LegacySourceReader(pool)

        reader.list_eligible_members(offset=200, limit=100)

        sql, offset, limit = cursor.execute.call_args.args
        assert "OFFSET ? ROWS FETCH NEXT ? ROWS ONLY" in sql
        assert "ORDER BY t.nome, t.codigo" in sql
        assert "t.PAMBS = 1" in sql
        assert (offset, limit) == (200, 100)
        cursor.close.assert_called_once()

    def test_uses_configured_tables(self):
        pool, cursor = make_pool()
        reader = LegacySourceReader(pool, LegacySchema(members_table="erp.socios"))

        reader.list_eligible_members(0, 10)

        assert "FROM [erp].[socios] t" in cursor.execute.call_args.args[0]

    def test_skips_row_without_code(self):
        pool, _ = make_pool([member("  "), member("A002")])
        reader = LegacySourceReader(pool)

        rows = reader.list_eligible_members(0, 10)

        assert [r.code for r in rows] == ["A002"]

    def test_null_balance_is_zero(self):
        pool, _ = make_pool([member("A001", balance=None)])
        reader = LegacySourceReader(pool)

        assert reader.list_eligible_members(0, 10)[0].balance == Decimal("0")

    @pytest.mark.parametrize("offset,limit", [(-1, 10), (0, 0), ("0", 10)])
    def test_rejects_invalid_paging(self, offset, limit):
        pool, _ = make_pool()
        reader = LegacySourceReader(pool)

        with pytest.raises(ValueError):
            reader.list_eligible_members(offset, limit)

    def test_rejects_unsafe_table_name(self):
        pool, _ = make_pool()

        with pytest.raises(ConfigurationError):
            LegacySourceReader(pool, LegacySchema(members_table="x; DROP TABLE y"))


class TestListTransactions:
    """Test document header queries"""

    def test_active_transactions(self):
        posted = datetime(2026, 3, 1, 10, 30)
        pool, cursor = make_pool([
            SimpleNamespace(
                document_number="INV-1 ", document_type="FAC", counterparty_code="C1",
                member_code="A001", discount=" ", posting_date=posted,
                amount1=Decimal("10.00"), amount2=Decimal("2.30"),
            ),
        ])
        reader = LegacySourceReader(pool)

        rows = reader.list_active_transactions("A001")

        assert cursor.execute.call_args.args[1:] == ("A001",)
        assert "anulado = 0" in cursor.execute.call_args.args[0]
        row = rows[0]
        assert row.document_number == "INV-1"
        assert row.discount is None
        assert row.posting_date == posted
        assert row.amount1 + row.amount2 == Decimal("12.30")

    def test_canceled_transactions(self):
        pool, cursor = make_pool([
            SimpleNamespace(document_number="INV-1", document_type="FAC", counterparty_code="C1"),
        ])
        reader = LegacySourceReader(pool)

        rows = reader.list_canceled_transactions("A001")

        assert "anulado = 1" in cursor.execute.call_args.args[0]
        assert rows[0].key_for("m-1") == ("INV-1", "FAC", "C1", "m-1")


class TestSourceErrors:
    """Test retry and error translation"""

    @patch('src.utils.retry.time.sleep')
    def test_transient_error_retried(self, mock_sleep):
        pool, cursor = make_pool(
            [member("A001")],
            side_effect=[pyodbc.OperationalError("08S01", "Communication link failure"), None],
        )
        reader = LegacySourceReader(pool, max_retries=2)

        rows = reader.list_eligible_members(0, 10)

        assert [r.code for r in rows] == ["A001"]
        assert cursor.execute.call_count == 2
        assert mock_sleep.call_count == 1

    @patch('src.utils.retry.time.sleep')
    def test_exhausted_retries_raise_source_unavailable(self, mock_sleep):
        pool, cursor = make_pool(
            side_effect=pyodbc.OperationalError("08S01", "Communication link failure")
        )
        reader = LegacySourceReader(pool, max_retries=2)

        with pytest.raises(SourceUnavailableError, match="list_active_transactions"):
            reader.list_active_transactions("A001")

        assert cursor.execute.call_count == 3

    def test_non_transient_error_not_retried(self):
        pool, cursor = make_pool(
            side_effect=pyodbc.ProgrammingError("42S02", "Invalid object name")
        )
        reader = LegacySourceReader(pool, max_retries=3)

        with pytest.raises(SourceUnavailableError):
            reader.list_canceled_transactions("A001")

        assert cursor.execute.call_count == 1

    @patch('src.utils.retry.time.sleep')
    def test_pool_exhaustion_is_source_unavailable(self, mock_sleep):
        pool = MagicMock()
        pool.acquire.side_effect = PoolExhaustedError("no connection")
        reader = LegacySourceReader(pool, max_retries=1)

        with pytest.raises(SourceUnavailableError):
            reader.list_eligible_members(0, 10)

        assert pool.acquire.call_count == 2
