"""In-process span recorder exporter."""

from __future__ import annotations

import threading
from typing import List, Sequence

from ..core.span import Span
from .base import Exporter, ExportResult


class InMemorySpanExporter(Exporter):
    """Accumulates exported spans in memory, in export order."""

    name = "memory"

    def __init__(self) -> None:
        self._spans: List[Span] = []
        self._lock = threading.Lock()
        self._closed = False

    async def export(self, spans: Sequence[Span]) -> ExportResult:
        if self._closed:
            return ExportResult.FAILURE
        with self._lock:
            self._spans.extend(spans)
        return ExportResult.SUCCESS

    def get_finished_spans(self) -> List[Span]:
        with self._lock:
            return list(self._spans)

    def clear(self) -> None:
        with self._lock:
            self._spans.clear()

    async def close(self) -> None:
        self._closed = True
