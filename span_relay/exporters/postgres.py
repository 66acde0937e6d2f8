"""PostgreSQL exporter for span data."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Sequence, Tuple

import asyncpg

from ..core.span import Span
from ..errors import ConfigError
from ..utils.time import ns_to_datetime_naive, ns_to_us
from .base import Exporter, ExportResult

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS spans (
    trace_id CHAR(32) NOT NULL,
    span_id CHAR(16) NOT NULL,
    parent_span_id CHAR(16),
    service TEXT NOT NULL,
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    start_time TIMESTAMP NOT NULL,
    end_time TIMESTAMP NOT NULL,
    duration_us BIGINT NOT NULL,
    status_code TEXT NOT NULL,
    status_message TEXT,
    attributes JSONB NOT NULL DEFAULT '{}'::jsonb,
    events JSONB NOT NULL DEFAULT '[]'::jsonb,
    PRIMARY KEY (trace_id, span_id)
)
"""

INSERT_SQL = """
INSERT INTO spans (
    trace_id,
    span_id,
    parent_span_id,
    service,
    name,
    kind,
    start_time,
    end_time,
    duration_us,
    status_code,
    status_message,
    attributes,
    events
)
VALUES (
    $1, $2, $3, $4, $5, $6,
    $7, $8, $9, $10, $11, $12::jsonb, $13::jsonb
)
ON CONFLICT (trace_id, span_id) DO NOTHING
"""


def span_row(span: Span) -> Tuple[Any, ...]:
    """Flatten a finished span into the positional values of ``INSERT_SQL``."""
    payload = span.to_dict()
    end_ns = span.end_time_ns if span.end_time_ns is not None else span.start_time_ns
    return (
        payload["trace_id"],
        payload["span_id"],
        payload["parent_span_id"],
        payload["service"],
        payload["name"],
        payload["kind"],
        ns_to_datetime_naive(span.start_time_ns),
        ns_to_datetime_naive(end_ns),
        ns_to_us(end_ns - span.start_time_ns),
        payload["status_code"],
        payload["status_message"],
        json.dumps(payload["attributes"], sort_keys=True),
        json.dumps(payload["events"], sort_keys=True),
    )


class PostgresExporter(Exporter):
    """Exporter that persists spans into PostgreSQL using ``asyncpg``."""

    name = "postgres"

    def __init__(
        self,
        dsn: Optional[str] = None,
        *,
        pool: Optional[asyncpg.Pool] = None,
        min_size: int = 1,
        max_size: int = 10,
        create_table: bool = False,
    ) -> None:
        if not dsn and pool is None:
            raise ConfigError("Either `dsn` or `pool` must be provided for PostgresExporter.")
        self._dsn = dsn
        self._pool = pool
        self._min_size = min_size
        self._max_size = max_size
        self._create_table = create_table

    async def connect(self) -> None:
        """Initialize a connection pool if one was not supplied."""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
            )
        if self._create_table:
            async with self._pool.acquire() as conn:
                await conn.execute(CREATE_TABLE_SQL)
            self._create_table = False

    async def export(self, spans: Sequence[Span]) -> ExportResult:
        """Insert completed spans into PostgreSQL in one batch."""
        if not spans:
            return ExportResult.SUCCESS
        rows: List[Tuple[Any, ...]] = [span_row(span) for span in spans]
        try:
            if self._pool is None or self._create_table:
                await self.connect()
            assert self._pool is not None
            async with self._pool.acquire() as conn:
                await conn.executemany(INSERT_SQL, rows)
        except (OSError, asyncpg.PostgresError) as exc:
            logger.error("Failed to export %d spans to PostgreSQL: %s", len(spans), exc)
            return ExportResult.FAILURE
        return ExportResult.SUCCESS

    async def close(self) -> None:
        """Close the underlying pool if it exists."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
