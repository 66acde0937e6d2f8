"""Process-wide pipeline setup, run before application code.

``initialize()`` reads :class:`~span_relay.config.PipelineConfig`, builds the
exporters and processor chain, installs the configured propagators, starts
the Prometheus scrape endpoint and publishes the tracer returned by
``get_tracer()``.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .config import PipelineConfig
from .core.metrics import SpanMetrics, start_metrics_server
from .core.propagation import propagator_from_names, set_global_propagator
from .core.sampling import sampler_for_rate
from .core.tracer import Tracer
from .exporters.base import Exporter
from .exporters.console import ConsoleExporter
from .exporters.zipkin import ZipkinExporter
from .instrument import Instrumentation, instrument
from .processors.base import MultiSpanProcessor, SpanProcessor
from .processors.batch import BatchSpanProcessor
from .processors.simple import SimpleSpanProcessor

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_pipeline: Optional["Pipeline"] = None
_fallback_tracer = Tracer(service="unknown-service")


@dataclass
class Pipeline:
    """The active telemetry pipeline of this process."""

    config: PipelineConfig
    instrumentation: Instrumentation
    metrics_server: Optional[Tuple[Any, Any]] = None

    @property
    def tracer(self) -> Tracer:
        return self.instrumentation.tracer

    async def shutdown(self) -> None:
        await self.instrumentation.shutdown()
        if self.metrics_server is not None:
            server, _thread = self.metrics_server
            server.shutdown()
            server.server_close()
            self.metrics_server = None


def build_exporters(config: PipelineConfig) -> List[Exporter]:
    exporters: List[Exporter] = []
    for name in config.active_exporters:
        if name == "zipkin":
            exporters.append(ZipkinExporter(config.zipkin_endpoint))
        elif name == "console":
            exporters.append(ConsoleExporter())
        elif name == "postgres":
            from .exporters.postgres import PostgresExporter

            exporters.append(PostgresExporter(config.database_url, create_table=True))
    return exporters


def _processor_for(exporter: Exporter, config: PipelineConfig, metrics: Optional[SpanMetrics]) -> SpanProcessor:
    if config.processor == "simple":
        return SimpleSpanProcessor(exporter, metrics=metrics)
    return BatchSpanProcessor(
        exporter,
        max_queue_size=config.batch.max_queue_size,
        max_export_batch_size=config.batch.max_export_batch_size,
        schedule_delay_s=config.batch.schedule_delay_ms / 1000,
        export_timeout_s=config.batch.export_timeout_ms / 1000,
        metrics=metrics,
    )


def build_instrumentation(config: PipelineConfig, metrics: Optional[SpanMetrics] = None) -> Instrumentation:
    """Build a tracer and processor chain for ``config`` without touching global state."""
    processors = [_processor_for(exporter, config, metrics) for exporter in build_exporters(config)]
    processor: Optional[SpanProcessor] = None
    if len(processors) == 1:
        processor = processors[0]
    elif processors:
        processor = MultiSpanProcessor(processors)
    return instrument(
        config.service_name,
        processor=processor,
        sampler=sampler_for_rate(config.sample_rate),
        metrics=metrics,
    )


def initialize(
    config: Optional[PipelineConfig] = None,
    *,
    serve_metrics: bool = True,
    register_atexit: bool = False,
) -> Pipeline:
    """Install the process-wide pipeline. A second call returns the active one."""
    global _pipeline
    with _lock:
        if _pipeline is not None:
            logger.warning(
                "span-relay already initialized for service %r; ignoring new configuration",
                _pipeline.config.service_name,
            )
            return _pipeline

        config = config or PipelineConfig.from_env()
        metrics = SpanMetrics() if config.metrics_enabled else None
        instrumentation = build_instrumentation(config, metrics)
        set_global_propagator(propagator_from_names(config.propagators))

        pipeline = Pipeline(config=config, instrumentation=instrumentation)
        if metrics is not None and serve_metrics:
            pipeline.metrics_server = start_metrics_server(metrics, port=config.metrics_port, addr=config.metrics_host)
        _pipeline = pipeline

    logger.info(
        "span-relay initialized: service=%s exporters=%s processor=%s sample_rate=%s",
        config.service_name,
        ",".join(config.active_exporters) or "none",
        config.processor,
        config.sample_rate,
    )
    if register_atexit:
        atexit.register(_shutdown_at_exit)
    return pipeline


def get_pipeline() -> Optional[Pipeline]:
    return _pipeline


def get_tracer() -> Tracer:
    """Return the initialized tracer, or a tracer that exports nothing."""
    pipeline = _pipeline
    if pipeline is None:
        return _fallback_tracer
    return pipeline.tracer


async def shutdown() -> None:
    """Flush pending spans and tear down the active pipeline."""
    global _pipeline
    with _lock:
        pipeline, _pipeline = _pipeline, None
    if pipeline is not None:
        await pipeline.shutdown()
        logger.info("span-relay shut down for service %s", pipeline.config.service_name)


def _shutdown_at_exit() -> None:
    if _pipeline is not None:
        asyncio.run(shutdown())
