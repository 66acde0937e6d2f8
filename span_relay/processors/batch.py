"""Buffered processor that exports spans in batches from a background task."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional

from ..core.metrics import SpanMetrics
from ..core.span import Span
from ..errors import ConfigError
from ..exporters.base import Exporter, ExportResult
from .base import SpanProcessor

logger = logging.getLogger(__name__)


class BatchSpanProcessor(SpanProcessor):
    """Queues ended spans and exports them in batches.

    A worker task, started lazily in the running event loop, exports whenever
    ``max_export_batch_size`` spans are waiting or ``schedule_delay_s`` has
    elapsed. Spans arriving while the queue holds ``max_queue_size`` entries
    are dropped and counted in :attr:`dropped_spans`.
    """

    def __init__(
        self,
        exporter: Exporter,
        *,
        max_queue_size: int = 2048,
        max_export_batch_size: int = 512,
        schedule_delay_s: float = 5.0,
        export_timeout_s: float = 30.0,
        metrics: Optional[SpanMetrics] = None,
    ) -> None:
        if max_queue_size <= 0:
            raise ConfigError("`max_queue_size` must be positive.")
        if max_export_batch_size <= 0:
            raise ConfigError("`max_export_batch_size` must be positive.")
        if max_export_batch_size > max_queue_size:
            raise ConfigError("`max_export_batch_size` must not exceed `max_queue_size`.")
        if schedule_delay_s <= 0:
            raise ConfigError("`schedule_delay_s` must be positive.")
        if export_timeout_s <= 0:
            raise ConfigError("`export_timeout_s` must be positive.")

        self.exporter = exporter
        self.max_queue_size = max_queue_size
        self.max_export_batch_size = max_export_batch_size
        self.schedule_delay_s = schedule_delay_s
        self.export_timeout_s = export_timeout_s
        self.metrics = metrics
        self.dropped_spans = 0

        self._queue: Deque[Span] = deque()
        self._dropping = False
        self._shutdown = False
        self._worker: Optional[asyncio.Task] = None
        self._worker_loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    async def on_end(self, span: Span) -> None:
        if self._shutdown or len(self._queue) >= self.max_queue_size:
            self._drop(1)
            return
        self._dropping = False
        self._queue.append(span)
        self._ensure_worker()
        if len(self._queue) >= self.max_export_batch_size and self._wakeup is not None:
            self._wakeup.set()

    async def force_flush(self, timeout_s: Optional[float] = None) -> bool:
        """Export every queued span. Returns False if ``timeout_s`` ran out first."""
        try:
            await asyncio.wait_for(self._export_pending(), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("Timed out flushing spans; %d still queued", len(self._queue))
            return False
        return True

    async def shutdown(self) -> None:
        """Flush the queue, stop the worker and close the exporter."""
        if self._shutdown:
            return
        self._shutdown = True

        worker = self._worker
        if worker is not None and not worker.done() and self._worker_loop is asyncio.get_running_loop():
            assert self._wakeup is not None
            self._wakeup.set()
            await worker
        self._worker = None
        self._worker_loop = None

        await self._export_pending()
        await self.exporter.close()
        if self.dropped_spans:
            logger.info("BatchSpanProcessor shut down after dropping %d spans", self.dropped_spans)

    def _drop(self, count: int) -> None:
        self.dropped_spans += count
        if self.metrics is not None:
            self.metrics.record_dropped("batch", count)
        if not self._dropping:
            self._dropping = True
            if self._shutdown:
                logger.warning("BatchSpanProcessor is shut down; dropping spans")
            else:
                logger.warning("Span queue is full (%d); dropping spans", self.max_queue_size)

    def _ensure_worker(self) -> None:
        loop = asyncio.get_running_loop()
        if self._worker is not None and not self._worker.done() and self._worker_loop is loop:
            return
        self._worker_loop = loop
        self._wakeup = asyncio.Event()
        self._worker = loop.create_task(self._run(self._wakeup))

    async def _run(self, wakeup: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self.schedule_delay_s)
            except asyncio.TimeoutError:
                pass
            wakeup.clear()
            await self._export_pending()
            if self._shutdown:
                return

    def _running_loop_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _export_pending(self) -> None:
        async with self._running_loop_lock():
            while self._queue:
                size = min(len(self._queue), self.max_export_batch_size)
                batch: List[Span] = [self._queue.popleft() for _ in range(size)]
                await self._export(batch)

    async def _export(self, batch: List[Span]) -> None:
        try:
            result = await asyncio.wait_for(self.exporter.export(batch), timeout=self.export_timeout_s)
        except asyncio.TimeoutError:
            logger.error(
                "Exporter %s timed out after %.1fs; %d spans lost",
                self.exporter.name,
                self.export_timeout_s,
                len(batch),
            )
            result = ExportResult.FAILURE
        except asyncio.CancelledError:
            logger.error("Export to %s was cancelled; %d spans lost", self.exporter.name, len(batch))
            self._record_export(ExportResult.FAILURE)
            raise
        except Exception:
            logger.exception("Exporter %s raised; %d spans lost", self.exporter.name, len(batch))
            result = ExportResult.FAILURE
        self._record_export(result)

    def _record_export(self, result: ExportResult) -> None:
        if self.metrics is not None:
            self.metrics.record_export(self.exporter.name, result == ExportResult.SUCCESS)
