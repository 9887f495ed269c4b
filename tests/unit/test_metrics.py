"""
Unit tests for Prometheus metrics

Every test runs against its own CollectorRegistry so counters start at zero.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry, Counter

from src.member_sync.metrics import SyncMetrics
from src.member_sync.models import (
    MemberAction,
    MemberSyncResult,
    PassResult,
    PassStatus,
    TransactionSyncResult,
)
from src.utils.metrics import (
    ApplicationInfo,
    MetricsPublisher,
    get_or_create_metric,
    initialize_metrics,
)


def make_pass(status, duration=12.0, members=None, source_rows=3):
    started = datetime(2026, 1, 1, tzinfo=UTC)
    return PassResult(
        pass_id="abc123",
        status=status,
        started_at=started,
        finished_at=started + timedelta(seconds=duration),
        source_rows=source_rows,
        members=members or [],
    )


class TestGetOrCreateMetric:
    """Test idempotent metric registration"""

    def test_returns_existing_metric(self, registry):
        def factory():
            return Counter("widgets_total", "Widgets", registry=registry)

        first = get_or_create_metric(factory, "widgets_total", registry)
        second = get_or_create_metric(factory, "widgets_total", registry)

        assert first is second

    def test_unrelated_value_error_propagates(self, registry):
        def factory():
            raise ValueError("bad metric name")

        with pytest.raises(ValueError, match="bad metric name"):
            get_or_create_metric(factory, "missing_total", registry)


class TestSyncMetrics:
    """Test SyncMetrics recording"""

    def test_can_be_created_twice_on_same_registry(self, registry):
        first = SyncMetrics(registry)
        second = SyncMetrics(registry)

        assert first.passes_total is second.passes_total

    def test_records_successful_pass(self, registry):
        metrics = SyncMetrics(registry)

        with patch('src.member_sync.metrics.time.time', return_value=1700000000.0):
            metrics.record_pass(make_pass(PassStatus.SUCCESS))

        assert registry.get_sample_value(
            "member_sync_passes_total", {"status": "SUCCESS"}
        ) == 1.0
        assert registry.get_sample_value("member_sync_last_success_timestamp") == 1700000000.0
        assert registry.get_sample_value("member_sync_source_rows") == 3.0
        assert registry.get_sample_value("member_sync_pass_duration_seconds_sum") == 12.0

    def test_partial_pass_does_not_refresh_last_success(self, registry):
        metrics = SyncMetrics(registry)

        metrics.record_pass(make_pass(PassStatus.PARTIAL))

        assert registry.get_sample_value("member_sync_last_success_timestamp") == 0.0
        assert registry.get_sample_value(
            "member_sync_passes_total", {"status": "PARTIAL"}
        ) == 1.0

    def test_skipped_pass_only_counted(self, registry):
        metrics = SyncMetrics(registry)

        metrics.record_pass(make_pass(PassStatus.SKIPPED, duration=0, source_rows=0))

        assert registry.get_sample_value(
            "member_sync_passes_total", {"status": "SKIPPED"}
        ) == 1.0
        assert registry.get_sample_value("member_sync_pass_duration_seconds_count") == 0.0

    def test_records_member_outcomes_and_transactions(self, registry):
        metrics = SyncMetrics(registry)

        metrics.record_member(MemberSyncResult(
            code="A001",
            action=MemberAction.CREATE,
            success=True,
            transactions=TransactionSyncResult(inserted=3, deleted=1),
        ))
        metrics.record_member(MemberSyncResult(
            code="A002",
            action=MemberAction.UPDATE,
            success=False,
            error_type="MemberTimeoutError",
        ))

        assert registry.get_sample_value(
            "member_sync_members_total", {"action": "create", "outcome": "success"}
        ) == 1.0
        assert registry.get_sample_value(
            "member_sync_members_total", {"action": "update", "outcome": "failed"}
        ) == 1.0
        assert registry.get_sample_value("member_sync_member_timeouts_total") == 1.0
        assert registry.get_sample_value(
            "member_sync_transactions_total", {"operation": "insert"}
        ) == 3.0
        assert registry.get_sample_value(
            "member_sync_transactions_total", {"operation": "delete"}
        ) == 1.0


class TestMetricsPublisher:
    """Test MetricsPublisher"""

    @patch('src.utils.metrics.publisher.start_http_server')
    def test_start_serves_registry(self, mock_server, registry):
        publisher = MetricsPublisher(port=9999, registry=registry)

        publisher.start()
        publisher.start()

        mock_server.assert_called_once_with(9999, registry=registry)
        assert publisher.is_started() is True

    @patch('src.utils.metrics.publisher.start_http_server', side_effect=OSError("in use"))
    def test_port_conflict_raises_runtime_error(self, mock_server, registry):
        publisher = MetricsPublisher(port=9091, registry=registry)

        with pytest.raises(RuntimeError, match="9091 is unavailable"):
            publisher.start()

        assert publisher.is_started() is False

    @patch('src.utils.metrics.publisher.start_http_server')
    def test_initialize_metrics(self, mock_server, registry):
        result = initialize_metrics(port=9100, registry=registry, version="2.0.0")

        assert result["publisher"].is_started()
        assert registry.get_sample_value(
            "application_info", {"name": "member-sync", "version": "2.0.0"}
        ) == 1.0


class TestApplicationInfo:
    """Test ApplicationInfo"""

    def test_uptime_is_reported(self, registry):
        with patch('src.utils.metrics.publisher.time.time', return_value=1000.0):
            info = ApplicationInfo(registry=registry)

        with patch('src.utils.metrics.publisher.time.time', return_value=1042.0):
            assert info.get_uptime() == 42.0
            assert registry.get_sample_value("application_uptime_seconds") == 42.0

    def test_schedule_details_become_labels(self, registry):
        ApplicationInfo(registry=registry, details={"schedule": "interval 60s", "batch_size": 1000})

        assert registry.get_sample_value(
            "application_info",
            {"name": "member-sync", "version": "1.0.0",
             "schedule": "interval 60s", "batch_size": "1000"},
        ) == 1.0

    def test_twice_on_same_registry(self):
        registry = CollectorRegistry()

        ApplicationInfo(version="1.0.0", registry=registry)
        ApplicationInfo(version="1.0.1", registry=registry)

        assert registry.get_sample_value(
            "application_info", {"name": "member-sync", "version": "1.0.1"}
        ) == 1.0
