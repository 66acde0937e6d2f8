"""Trace and span identifier generation and validation."""

from __future__ import annotations

import random
import re

_HEX_RE = re.compile(r"^[0-9a-f]+$")

INVALID_TRACE_ID = "0" * 32
INVALID_SPAN_ID = "0" * 16

_rng = random.SystemRandom()


def new_trace_id() -> str:
    """Return a random, non-zero 128-bit trace id as 32 lowercase hex chars."""
    value = 0
    while value == 0:
        value = _rng.getrandbits(128)
    return format(value, "032x")


def new_span_id() -> str:
    """Return a random, non-zero 64-bit span id as 16 lowercase hex chars."""
    value = 0
    while value == 0:
        value = _rng.getrandbits(64)
    return format(value, "016x")


def is_valid_trace_id(value: str) -> bool:
    return len(value) == 32 and bool(_HEX_RE.match(value)) and value != INVALID_TRACE_ID


def is_valid_span_id(value: str) -> bool:
    return len(value) == 16 and bool(_HEX_RE.match(value)) and value != INVALID_SPAN_ID
