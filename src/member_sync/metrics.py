"""
Metrics for member sync passes.

Tracks pass outcomes, per-member outcomes and transaction writes so that
staleness (failed or skipped passes) is visible on the dashboard.
"""

import logging
import time
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from src.utils.metrics import get_or_create_metric

from .models import MemberSyncResult, PassResult, PassStatus

logger = logging.getLogger(__name__)


class SyncMetrics:
    """
    Prometheus metrics for the reconciliation engine

    Safe to instantiate more than once against the same registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize sync metrics

        Args:
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY
        r = self.registry

        self.passes_total = get_or_create_metric(
            lambda: Counter(
                "member_sync_passes_total",
                "Total number of reconciliation passes",
                ["status"],
                registry=r,
            ),
            "member_sync_passes_total",
            r,
        )

        self.pass_duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "member_sync_pass_duration_seconds",
                "Duration of reconciliation passes in seconds",
                buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600),
                registry=r,
            ),
            "member_sync_pass_duration_seconds",
            r,
        )

        self.last_success_timestamp = get_or_create_metric(
            lambda: Gauge(
                "member_sync_last_success_timestamp",
                "Timestamp of the last pass without failures",
                registry=r,
            ),
            "member_sync_last_success_timestamp",
            r,
        )

        self.members_total = get_or_create_metric(
            lambda: Counter(
                "member_sync_members_total",
                "Members processed by action and outcome",
                ["action", "outcome"],
                registry=r,
            ),
            "member_sync_members_total",
            r,
        )

        self.member_timeouts_total = get_or_create_metric(
            lambda: Counter(
                "member_sync_member_timeouts_total",
                "Members abandoned after exceeding their time budget",
                registry=r,
            ),
            "member_sync_member_timeouts_total",
            r,
        )

        self.transactions_total = get_or_create_metric(
            lambda: Counter(
                "member_sync_transactions_total",
                "Transactions written to the store",
                ["operation"],
                registry=r,
            ),
            "member_sync_transactions_total",
            r,
        )

        self.source_rows = get_or_create_metric(
            lambda: Gauge(
                "member_sync_source_rows",
                "Eligible legacy members seen in the last pass",
                registry=r,
            ),
            "member_sync_source_rows",
            r,
        )

    def record_member(self, result: MemberSyncResult) -> None:
        outcome = "success" if result.success else "failed"
        self.members_total.labels(action=result.action.value, outcome=outcome).inc()
        if result.error_type == "MemberTimeoutError":
            self.member_timeouts_total.inc()
        if result.transactions.inserted:
            self.transactions_total.labels(operation="insert").inc(result.transactions.inserted)
        if result.transactions.deleted:
            self.transactions_total.labels(operation="delete").inc(result.transactions.deleted)

    def record_pass(self, result: PassResult) -> None:
        """
        Record a finished (or skipped) pass

        Args:
            result: Outcome of the pass
        """
        self.passes_total.labels(status=result.status.value).inc()

        if result.status is PassStatus.SKIPPED:
            return

        self.pass_duration_seconds.observe(result.duration_seconds)
        self.source_rows.set(result.source_rows)
        if result.status is PassStatus.SUCCESS:
            self.last_success_timestamp.set(time.time())

        logger.info(
            f"Recorded sync pass: status={result.status.value}, "
            f"duration={result.duration_seconds:.2f}s, "
            f"created={result.created}, updated={result.updated}, failed={result.failed}"
        )
