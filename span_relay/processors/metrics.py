"""Processor that turns span lifecycles into Prometheus metrics."""

from __future__ import annotations

from ..core.metrics import SpanMetrics
from ..core.span import Span
from .base import SpanProcessor


class MetricsSpanProcessor(SpanProcessor):
    def __init__(self, metrics: SpanMetrics) -> None:
        self.metrics = metrics

    def on_start(self, span: Span) -> None:
        self.metrics.record_start(span)

    async def on_end(self, span: Span) -> None:
        self.metrics.record_end(span)
