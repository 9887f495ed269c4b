"""
Distributed tracing using OpenTelemetry.

Spans cover a sync pass, each member, and every legacy and store query.
Until initialize_tracing() is called (and an OTLP endpoint or console
export is configured) spans are recorded by the no-op API tracer.
"""

from .context import (
    add_span_attributes,
    add_span_event,
    current_trace_id,
    trace_function,
    trace_operation,
)
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "trace_function",
    "add_span_attributes",
    "add_span_event",
    "current_trace_id",
]
