"""Core tracing, propagation, sampling and metrics modules for span-relay."""

from .context import SpanContext, get_current_span, use_span
from .metrics import AlertThresholds, MetricsSnapshot, SpanMetrics
from .span import Event, Span, SpanKind, Status, StatusCode
from .tracer import Tracer

__all__ = [
    "SpanContext",
    "Span",
    "SpanKind",
    "Status",
    "StatusCode",
    "Event",
    "Tracer",
    "SpanMetrics",
    "MetricsSnapshot",
    "AlertThresholds",
    "get_current_span",
    "use_span",
]
