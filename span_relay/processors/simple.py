"""Processor that exports each span as soon as it ends."""

from __future__ import annotations

import logging
from typing import Optional

from ..core.metrics import SpanMetrics
from ..core.span import Span
from ..exporters.base import Exporter, ExportResult
from .base import SpanProcessor

logger = logging.getLogger(__name__)


class SimpleSpanProcessor(SpanProcessor):
    """Forwards every ended span to the exporter immediately, one at a time."""

    def __init__(self, exporter: Exporter, *, metrics: Optional[SpanMetrics] = None) -> None:
        self.exporter = exporter
        self.metrics = metrics
        self._shutdown = False

    async def on_end(self, span: Span) -> None:
        if self._shutdown:
            logger.debug("SimpleSpanProcessor is shut down; dropping span %s", span.span_id)
            return
        try:
            result = await self.exporter.export([span])
        except Exception:
            logger.exception("Exporter %s raised while exporting span %s", self.exporter.name, span.span_id)
            result = ExportResult.FAILURE
        if self.metrics is not None:
            self.metrics.record_export(self.exporter.name, result == ExportResult.SUCCESS)

    async def shutdown(self) -> None:
        if self._shutdown:
            return
        self._shutdown = True
        await self.exporter.close()
