"""Exporter that writes spans to a stream as JSON lines."""

from __future__ import annotations

import json
import sys
from typing import Optional, Sequence, TextIO

from ..core.span import Span
from .base import Exporter, ExportResult


class ConsoleExporter(Exporter):
    """Writes one JSON object per span; useful for local debugging."""

    name = "console"

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    async def export(self, spans: Sequence[Span]) -> ExportResult:
        stream = self._stream or sys.stdout
        for span in spans:
            stream.write(json.dumps(span.to_dict(), sort_keys=True, default=str) + "\n")
        stream.flush()
        return ExportResult.SUCCESS
