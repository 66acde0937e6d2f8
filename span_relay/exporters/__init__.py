"""Exporter implementations for span-relay."""

from .base import Exporter, ExportResult
from .console import ConsoleExporter
from .memory import InMemorySpanExporter
from .zipkin import ZipkinExporter

__all__ = [
    "Exporter",
    "ExportResult",
    "ConsoleExporter",
    "InMemorySpanExporter",
    "ZipkinExporter",
    "PostgresExporter",
]


def __getattr__(name: str):
    if name == "PostgresExporter":
        from .postgres import PostgresExporter

        return PostgresExporter
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
