"""Example service that records spans and ships them to Zipkin or PostgreSQL."""

from __future__ import annotations

import asyncio
import os

from span_relay import SpanKind, instrument, traced
from span_relay.core.metrics import SpanMetrics
from span_relay.exporters import ZipkinExporter


def build_exporter():
    dsn = os.getenv("DATABASE_URL")
    if dsn:
        from span_relay.exporters import PostgresExporter

        return PostgresExporter(dsn=dsn, create_table=True)
    return ZipkinExporter(os.getenv("ZIPKIN_ENDPOINT", "http://localhost:9411/api/v2/spans"))


async def main() -> None:
    metrics = SpanMetrics()
    inst = instrument("example-orders", exporter=build_exporter(), metrics=metrics)
    tracer = inst.tracer

    @traced(tracer, kind=SpanKind.SERVER, attributes={"component": "orders"})
    async def place_order(order_id: str, amount: float) -> dict:
        async with tracer.span("reserve-stock", attributes={"order.id": order_id}) as span:
            await asyncio.sleep(0.01)
            span.add_event("stock-reserved", {"items": 3})
        async with tracer.span("charge-card", kind=SpanKind.CLIENT, attributes={"peer.service": "payments"}):
            if amount > 10_000:
                raise ValueError("amount above card limit")
            await asyncio.sleep(0.02)
        return {"order_id": order_id, "status": "placed"}

    try:
        print("Order:", await place_order("ord-1001", 42.0))
        try:
            await place_order("ord-1002", 25_000.0)
        except ValueError as exc:
            print("Order failed:", exc)
    finally:
        await inst.shutdown()
    print("Snapshot:", metrics.snapshot())


if __name__ == "__main__":
    asyncio.run(main())
