"""Base exporter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Sequence

from ..core.span import Span


class ExportResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Exporter(ABC):
    """Abstract base class for telemetry exporters."""

    name: str = "exporter"

    @abstractmethod
    async def export(self, spans: Sequence[Span]) -> ExportResult:
        """Export a batch of completed spans."""

    async def close(self) -> None:
        """Close exporter resources if needed."""
