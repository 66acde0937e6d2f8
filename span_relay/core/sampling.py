"""Head sampling decisions for new spans."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..errors import ConfigError
from .context import SpanContext

_TRACE_ID_LIMIT = (1 << 64) - 1


class Sampler(ABC):
    """Decides whether a new span is sampled (exported)."""

    @abstractmethod
    def should_sample(self, trace_id: str, parent: Optional[SpanContext]) -> bool:
        """Return True when the span should be delivered to processors."""

    @property
    def description(self) -> str:
        return type(self).__name__


class StaticSampler(Sampler):
    def __init__(self, decision: bool) -> None:
        self._decision = decision

    def should_sample(self, trace_id: str, parent: Optional[SpanContext]) -> bool:
        return self._decision

    @property
    def description(self) -> str:
        return "AlwaysOnSampler" if self._decision else "AlwaysOffSampler"


ALWAYS_ON = StaticSampler(True)
ALWAYS_OFF = StaticSampler(False)


class TraceIdRatioSampler(Sampler):
    """Samples a deterministic fraction of traces keyed on the trace id.

    The lower 64 bits of the trace id are compared against ``ratio * 2**64``,
    so every service using the same ratio makes the same decision for a trace.
    """

    def __init__(self, ratio: float) -> None:
        if not 0.0 <= ratio <= 1.0:
            raise ConfigError(f"Sampling ratio must be within [0.0, 1.0], got {ratio!r}.")
        self.ratio = ratio
        self._bound = round(ratio * (_TRACE_ID_LIMIT + 1))

    def should_sample(self, trace_id: str, parent: Optional[SpanContext]) -> bool:
        return int(trace_id[-16:], 16) < self._bound

    @property
    def description(self) -> str:
        return f"TraceIdRatioSampler{{{self.ratio}}}"


class ParentBasedSampler(Sampler):
    """Follows the parent's sampled flag; delegates root spans to ``root``."""

    def __init__(self, root: Sampler) -> None:
        self.root = root

    def should_sample(self, trace_id: str, parent: Optional[SpanContext]) -> bool:
        if parent is not None and parent.is_valid:
            return parent.sampled
        return self.root.should_sample(trace_id, parent)

    @property
    def description(self) -> str:
        return f"ParentBased{{root={self.root.description}}}"


def sampler_for_rate(rate: float) -> Sampler:
    """Build the default parent-based sampler for a configured sample rate."""
    if not 0.0 <= rate <= 1.0:
        raise ConfigError(f"Sampling ratio must be within [0.0, 1.0], got {rate!r}.")
    if rate == 1.0:
        root: Sampler = ALWAYS_ON
    elif rate == 0.0:
        root = ALWAYS_OFF
    else:
        root = TraceIdRatioSampler(rate)
    return ParentBasedSampler(root)
