"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from content_search_server.observability.context import get_trace_context, set_trace_context, trace_context
from content_search_server.observability.logging import (
    JsonFormatter,
    configure_log_exporter,
    configure_logging,
    init_log_exporter,
)
from content_search_server.observability.metrics import (
    ERROR_COUNT,
    RECORDS_WRITTEN,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    STORAGE_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from content_search_server.observability.tracing import (
    TraceContextMiddleware,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
    trace_request,
)


__all__ = [
    "ERROR_COUNT",
    "RECORDS_WRITTEN",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "STORAGE_LATENCY",
    "JsonFormatter",
    "TraceContextMiddleware",
    "configure_log_exporter",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_tracer",
    "get_trace_context",
    "init_log_exporter",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "trace_request",
    "track_latency",
]
