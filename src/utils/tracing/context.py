"""
Span helpers used by the pass, member and database code.

trace_operation opens a child of whatever span is current, so a store
query started inside sync_member shows up under that member, which in
turn sits under sync_pass.
"""

import functools
from contextlib import contextmanager

from opentelemetry import trace

from .tracer import get_tracer


def _stringify(attributes: dict) -> dict[str, str]:
    return {key: str(value) for key, value in attributes.items() if value is not None}


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Run the enclosed block inside a new span.

    Attribute values are stored as strings; None values are left out. An
    exception leaving the block marks the span with error attributes, is
    recorded on it, and propagates unchanged.

    Args:
        operation_name: Span name, e.g. "sync_member" or "store_create_member"
        kind: CLIENT for database round trips, INTERNAL otherwise
        **attributes: Span attributes such as member_code or db_system

    Yields:
        The active span

    Example:
        >>> with trace_operation("sync_member", member_code="A001") as span:
        ...     result = engine.sync_member(row, stored)
        ...     span.set_attribute("success", result.success)
    """
    with get_tracer().start_as_current_span(
        operation_name,
        kind=kind,
        record_exception=False,
    ) as span:
        for key, value in _stringify(attributes).items():
            span.set_attribute(key, value)

        try:
            yield span
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            span.set_attribute("error.message", str(e))
            span.record_exception(e)
            raise


def trace_function(operation_name: str | None = None, **default_attributes):
    """
    Decorator form of trace_operation.

    The span is named `operation_name`, or module.function when omitted,
    and carries a "function" attribute plus `default_attributes`.
    """
    def decorator(func):
        name = operation_name or f"{func.__module__}.{func.__name__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with trace_operation(name, function=func.__name__, **default_attributes):
                return func(*args, **kwargs)

        return wrapper
    return decorator


def add_span_attributes(**attributes):
    """Set attributes on the current span, e.g. pass totals once known."""
    span = trace.get_current_span()
    if span.is_recording():
        for key, value in _stringify(attributes).items():
            span.set_attribute(key, value)


def add_span_event(name: str, **attributes):
    """Add a timestamped event (such as "member_failed") to the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=_stringify(attributes))


def current_trace_id() -> str | None:
    """Hex trace id of the active span, or None outside a recorded span."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")
