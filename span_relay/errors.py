"""Exception types raised by span-relay."""

from __future__ import annotations

from typing import Optional


class SpanRelayError(Exception):
    """Base class for span-relay errors."""


class ConfigError(SpanRelayError, ValueError):
    """Raised when pipeline configuration is invalid."""


class ExportError(SpanRelayError):
    """Raised inside exporters for a failure that should not be retried."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
