"""
Metrics publisher for Prometheus HTTP server.

Starts the HTTP server that exposes /metrics and publishes static
application metadata.
"""

import logging
import time
from typing import Dict, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Gauge,
    Info,
    start_http_server,
)

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Serves the registry on /metrics

    The server runs in a daemon thread for the life of the process.
    """

    def __init__(
        self,
        port: int = 9091,
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Initialize metrics publisher

        Args:
            port: Port to expose metrics on (default: 9091)
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.port = port
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """
        Start the metrics HTTP server

        Raises:
            RuntimeError: If the port is already in use
        """
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            logger.error(f"Metrics server cannot bind port {self.port}: {e}")
            raise RuntimeError(
                f"Metrics server port {self.port} is unavailable. "
                f"Stop the conflicting process or set METRICS_PORT."
            ) from e

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")

    def is_started(self) -> bool:
        return self._server_started


class ApplicationInfo:
    """Application name, version, schedule details and uptime."""

    def __init__(
        self,
        app_name: str = "member-sync",
        version: str = "1.0.0",
        registry: Optional[CollectorRegistry] = None,
        details: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize application info metrics

        Args:
            app_name: Application name
            version: Application version
            registry: Custom Prometheus registry (default: global REGISTRY)
            details: Extra info labels, e.g. {"schedule": "interval 60s"}
        """
        self.registry = registry or REGISTRY
        r = self.registry

        self.info = get_or_create_metric(
            lambda: Info("application", "Application metadata", registry=r),
            "application",
            r,
        )
        labels = {key: str(value) for key, value in (details or {}).items()}
        labels.update(name=app_name, version=version)
        self.info.info(labels)

        self._start_time = time.time()

        self.uptime_seconds = get_or_create_metric(
            lambda: Gauge(
                "application_uptime_seconds",
                "Application uptime in seconds",
                registry=r,
            ),
            "application_uptime_seconds",
            r,
        )
        self.uptime_seconds.set_function(self.get_uptime)

    def get_uptime(self) -> float:
        """Get current uptime in seconds"""
        return time.time() - self._start_time
