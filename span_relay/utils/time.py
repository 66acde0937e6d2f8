"""Epoch-nanosecond time helpers."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def time_ns() -> int:
    """Return wall-clock epoch time in nanoseconds."""
    return time.time_ns()


def ns_to_us(value: int) -> int:
    return value // 1_000


def ns_to_datetime_naive(value: int) -> datetime:
    """Convert epoch nanoseconds to naive UTC for Postgres timestamp compatibility."""
    return datetime.fromtimestamp(value / 1e9, tz=timezone.utc).replace(tzinfo=None)
