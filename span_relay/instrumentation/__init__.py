"""Instrumentation for third-party client libraries."""

from .httpx import TracingTransport, traced_client

__all__ = ["TracingTransport", "traced_client"]
