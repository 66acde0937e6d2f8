"""Span-derived Prometheus metrics and alert evaluation helpers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

from .span import Span, StatusCode

logger = logging.getLogger(__name__)

DEFAULT_METRICS_PORT = 9464

DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


@dataclass
class MetricsSnapshot:
    """Aggregated counters and rates used for operational alerting."""

    total_spans: int
    error_rate: float
    avg_duration_s: float
    dropped_rate: float
    export_failure_rate: float


@dataclass
class AlertThresholds:
    """Threshold configuration for alert generation."""

    max_error_rate: float = 0.05
    max_avg_duration_s: float = 1.0
    max_dropped_rate: float = 0.01
    max_export_failure_rate: float = 0.10


def ratio(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 when the denominator is empty."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def build_alerts(snapshot: MetricsSnapshot, thresholds: AlertThresholds) -> List[str]:
    """Build textual alerts from a snapshot and threshold policy."""
    alerts: List[str] = []

    if snapshot.error_rate > thresholds.max_error_rate:
        alerts.append("error_rate_above_threshold")
    if snapshot.avg_duration_s > thresholds.max_avg_duration_s:
        alerts.append("avg_duration_above_threshold")
    if snapshot.dropped_rate > thresholds.max_dropped_rate:
        alerts.append("dropped_rate_above_threshold")
    if snapshot.export_failure_rate > thresholds.max_export_failure_rate:
        alerts.append("export_failure_rate_above_threshold")

    return alerts


def zeroed_counters() -> Dict[str, float]:
    """Create default in-process counters backing :meth:`SpanMetrics.snapshot`."""
    return {
        "started_spans": 0,
        "ended_spans": 0,
        "error_spans": 0,
        "total_duration_s": 0.0,
        "dropped_spans": 0,
        "export_batches": 0,
        "failed_export_batches": 0,
    }


class SpanMetrics:
    """Prometheus collectors for the pipeline, registered on their own registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "span_relay") -> None:
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()
        self._counters = zeroed_counters()

        self.spans_started = Counter(
            "spans_started_total",
            "Spans started, by service",
            ["service"],
            namespace=namespace,
            registry=self.registry,
        )
        self.spans_ended = Counter(
            "spans_ended_total",
            "Spans ended, by service, span name and status",
            ["service", "span_name", "status"],
            namespace=namespace,
            registry=self.registry,
        )
        self.span_duration = Histogram(
            "span_duration_seconds",
            "Span duration in seconds",
            ["service", "span_name"],
            namespace=namespace,
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )
        self.spans_dropped = Counter(
            "spans_dropped_total",
            "Spans dropped before export, by processor",
            ["processor"],
            namespace=namespace,
            registry=self.registry,
        )
        self.export_batches = Counter(
            "export_batches_total",
            "Export calls, by exporter and result",
            ["exporter", "result"],
            namespace=namespace,
            registry=self.registry,
        )

    def record_start(self, span: Span) -> None:
        self.spans_started.labels(service=span.service).inc()
        with self._lock:
            self._counters["started_spans"] += 1

    def record_end(self, span: Span) -> None:
        duration_s = (span.duration_ns or 0) / 1e9
        status = span.status.code.value.lower()
        self.spans_ended.labels(service=span.service, span_name=span.name, status=status).inc()
        self.span_duration.labels(service=span.service, span_name=span.name).observe(duration_s)
        with self._lock:
            self._counters["ended_spans"] += 1
            self._counters["total_duration_s"] += duration_s
            if span.status.code == StatusCode.ERROR:
                self._counters["error_spans"] += 1

    def record_dropped(self, processor: str, count: int = 1) -> None:
        self.spans_dropped.labels(processor=processor).inc(count)
        with self._lock:
            self._counters["dropped_spans"] += count

    def record_export(self, exporter: str, success: bool) -> None:
        self.export_batches.labels(exporter=exporter, result="success" if success else "failure").inc()
        with self._lock:
            self._counters["export_batches"] += 1
            if not success:
                self._counters["failed_export_batches"] += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            counters = dict(self._counters)
        ended = int(counters["ended_spans"])
        return MetricsSnapshot(
            total_spans=ended,
            error_rate=ratio(counters["error_spans"], ended),
            avg_duration_s=ratio(counters["total_duration_s"], ended),
            dropped_rate=ratio(counters["dropped_spans"], ended + counters["dropped_spans"]),
            export_failure_rate=ratio(counters["failed_export_batches"], counters["export_batches"]),
        )


def start_metrics_server(metrics: SpanMetrics, port: int = DEFAULT_METRICS_PORT, addr: str = "0.0.0.0") -> Tuple[Any, Any]:
    """Serve ``metrics.registry`` for Prometheus to scrape on ``addr:port``.

    Returns the ``(server, thread)`` pair from ``prometheus_client``; call
    ``server.shutdown()`` to stop serving.
    """
    server, thread = start_http_server(port, addr=addr, registry=metrics.registry)
    logger.info("Serving Prometheus metrics on http://%s:%d/metrics", addr, port)
    return server, thread
