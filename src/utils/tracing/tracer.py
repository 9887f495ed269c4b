"""
Tracer initialization and configuration for OpenTelemetry.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "member-sync"

_tracer: trace.Tracer | None = None
_provider: TracerProvider | None = None


def initialize_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0
) -> trace.Tracer:
    """
    Initialize distributed tracing with OpenTelemetry.

    Args:
        service_name: Name of the service for identification
        otlp_endpoint: OTLP collector endpoint (default: $OTLP_ENDPOINT, unset disables)
        console_export: If True, also export traces to console (debug)
        sampling_rate: Sampling rate 0.0-1.0 (1.0 = trace everything)

    Returns:
        Configured tracer instance
    """
    global _tracer, _provider

    if _provider is not None:
        logger.warning("Tracing already initialized, returning existing tracer")
        return _tracer

    if otlp_endpoint is None:
        otlp_endpoint = os.getenv("OTLP_ENDPOINT") or None
    console_export = console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true"

    if not otlp_endpoint and not console_export:
        logger.info("No trace exporter configured, spans will not be exported")
        _tracer = trace.get_tracer(service_name)
        return _tracer

    provider = TracerProvider(
        resource=Resource(attributes={SERVICE_NAME: service_name}),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )

    exporters = []
    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
        exporters.append(f"OTLP({otlp_endpoint})")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("Console")

    trace.set_tracer_provider(provider)
    _provider = provider
    _tracer = trace.get_tracer(service_name)

    logger.info(
        f"Tracing initialized: {service_name} "
        f"(exporters: {', '.join(exporters)}, sampling: {sampling_rate})"
    )
    return _tracer


def get_tracer() -> trace.Tracer:
    """
    Get the process tracer.

    Before initialize_tracing() this is the API proxy tracer, which starts
    recording once a provider is installed.
    """
    if _tracer is None:
        return trace.get_tracer(DEFAULT_SERVICE_NAME)
    return _tracer


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down. Call before exit."""
    global _tracer, _provider

    if _provider is None:
        return

    try:
        _provider.shutdown()
        logger.info("Tracing shutdown complete")
    except Exception as e:
        logger.error(f"Error during tracing shutdown: {e}")
    finally:
        _provider = None
        _tracer = None
