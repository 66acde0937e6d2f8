"""Span context identity and the in-process current-span slot."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generator, Optional, Tuple

from ..utils.ids import is_valid_span_id, is_valid_trace_id

if TYPE_CHECKING:
    from .span import Span

SAMPLED_FLAG = 0x01


@dataclass(frozen=True)
class SpanContext:
    """Correlation identifiers carried by a span and across process boundaries."""

    trace_id: str
    span_id: str
    trace_flags: int = SAMPLED_FLAG
    trace_state: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    is_remote: bool = False

    @property
    def is_valid(self) -> bool:
        return is_valid_trace_id(self.trace_id) and is_valid_span_id(self.span_id)

    @property
    def sampled(self) -> bool:
        return bool(self.trace_flags & SAMPLED_FLAG)

    def trace_state_header(self) -> str:
        return ",".join(f"{key}={value}" for key, value in self.trace_state)


_CURRENT_SPAN: ContextVar[Optional["Span"]] = ContextVar("span_relay_current_span", default=None)


def get_current_span() -> Optional["Span"]:
    """Return the span active in the current task/thread context, if any."""
    return _CURRENT_SPAN.get()


@contextmanager
def use_span(span: "Span") -> Generator["Span", None, None]:
    """Make ``span`` current for the duration of the block."""
    token = _CURRENT_SPAN.set(span)
    try:
        yield span
    finally:
        _CURRENT_SPAN.reset(token)
