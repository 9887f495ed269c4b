"""
Prometheus metrics publishing

Usage:
    from src.utils.metrics import initialize_metrics

    metrics = initialize_metrics(port=9091)
    # ... /metrics is now served; metric holders register on the same registry
"""

import logging
from typing import Any

from prometheus_client import CollectorRegistry

from .publisher import ApplicationInfo, MetricsPublisher
from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


def initialize_metrics(
    port: int = 9091,
    registry: CollectorRegistry | None = None,
    version: str = "1.0.0",
    **details: Any,
) -> dict[str, Any]:
    """
    Start the metrics server and publish application info

    Args:
        port: Port to expose metrics on (default: 9091)
        registry: Custom Prometheus registry (default: global REGISTRY)
        version: Application version reported in the info metric
        **details: Extra labels for the info metric (schedule, batch size)

    Returns:
        Dictionary with "publisher" (MetricsPublisher) and "app_info" (ApplicationInfo)
    """
    logger.info(f"Initializing metrics on port {port}")

    publisher = MetricsPublisher(port=port, registry=registry)
    publisher.start()

    return {
        "publisher": publisher,
        "app_info": ApplicationInfo(version=version, registry=registry, details=details),
    }


__all__ = [
    "MetricsPublisher",
    "ApplicationInfo",
    "initialize_metrics",
    "get_or_create_metric",
]
