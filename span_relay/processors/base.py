"""Span processor interface and fan-out composition."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..core.span import Span

logger = logging.getLogger(__name__)


class SpanProcessor(ABC):
    """Policy stage between the tracer and exporters."""

    def on_start(self, span: Span) -> None:
        """Called synchronously when a span starts."""

    @abstractmethod
    async def on_end(self, span: Span) -> None:
        """Called when a sampled span has finished."""

    async def force_flush(self, timeout_s: Optional[float] = None) -> bool:
        """Export anything buffered. Returns False if the flush timed out."""
        return True

    async def shutdown(self) -> None:
        """Flush and release resources."""


class NoopSpanProcessor(SpanProcessor):
    async def on_end(self, span: Span) -> None:
        return None


class MultiSpanProcessor(SpanProcessor):
    """Forwards every call to each child processor, in registration order."""

    def __init__(self, processors: Iterable[SpanProcessor] = ()) -> None:
        self._processors: List[SpanProcessor] = list(processors)

    @property
    def processors(self) -> List[SpanProcessor]:
        return list(self._processors)

    def add(self, processor: SpanProcessor) -> None:
        self._processors.append(processor)

    def on_start(self, span: Span) -> None:
        for processor in self._processors:
            processor.on_start(span)

    async def on_end(self, span: Span) -> None:
        for processor in self._processors:
            await processor.on_end(span)

    async def force_flush(self, timeout_s: Optional[float] = None) -> bool:
        flushed = True
        for processor in self._processors:
            flushed = await processor.force_flush(timeout_s) and flushed
        return flushed

    async def shutdown(self) -> None:
        """Shut down every child; a failing child does not stop the rest."""
        for processor in self._processors:
            try:
                await processor.shutdown()
            except Exception:
                logger.exception("Span processor %s failed to shut down", type(processor).__name__)
