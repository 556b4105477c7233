"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from diagram_store.observability.context import bound_context, get_trace_context, set_trace_context, trace_context
from diagram_store.observability.logging import JsonFormatter, configure_logging
from diagram_store.observability.metrics import (
    HTTP_REQUESTS,
    REPOSITORY_LATENCY,
    REPOSITORY_OPERATIONS,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from diagram_store.observability.tracing import (
    TraceContextMiddleware,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
)


__all__ = [
    "HTTP_REQUESTS",
    "REPOSITORY_LATENCY",
    "REPOSITORY_OPERATIONS",
    "JsonFormatter",
    "TraceContextMiddleware",
    "bound_context",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
