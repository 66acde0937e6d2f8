"""Client spans and header propagation for ``httpx.AsyncClient``."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..core.propagation import get_global_propagator
from ..core.span import SpanKind, StatusCode
from ..core.tracer import Tracer


def _url_without_credentials(url: httpx.URL) -> str:
    return str(url.copy_with(username=None, password=None, query=None, fragment=None))


class TracingTransport(httpx.AsyncBaseTransport):
    """Wraps another async transport, recording one CLIENT span per request.

    Propagation headers for the new span are injected into the outgoing
    request, so the server side can continue the trace.
    """

    def __init__(self, wrapped: Optional[httpx.AsyncBaseTransport] = None, tracer: Optional[Tracer] = None) -> None:
        self._wrapped = wrapped or httpx.AsyncHTTPTransport()
        self._tracer = tracer

    def _active_tracer(self) -> Tracer:
        if self._tracer is not None:
            return self._tracer
        from ..bootstrap import get_tracer

        return get_tracer()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        tracer = self._active_tracer()
        url = request.url
        attributes: Dict[str, Any] = {
            "http.method": request.method,
            "http.url": _url_without_credentials(url),
            "net.peer.name": url.host,
        }
        if url.port is not None:
            attributes["net.peer.port"] = url.port
        span = tracer.start_span(f"HTTP {request.method}", kind=SpanKind.CLIENT, attributes=attributes)

        carrier: dict = {}
        get_global_propagator().inject(carrier, span.context)
        for key, value in carrier.items():
            request.headers[key] = value

        try:
            response = await self._wrapped.handle_async_request(request)
        except BaseException as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}")
            raise
        else:
            span.set_attribute("http.status_code", response.status_code)
            if response.status_code >= 500:
                span.set_status(StatusCode.ERROR, f"HTTP {response.status_code}")
            return response
        finally:
            await tracer.end_span(span)

    async def aclose(self) -> None:
        await self._wrapped.aclose()


def traced_client(tracer: Optional[Tracer] = None, **client_kwargs: Any) -> httpx.AsyncClient:
    """Build an ``httpx.AsyncClient`` whose requests are traced.

    A ``transport`` keyword is wrapped rather than replaced.
    """
    transport = client_kwargs.pop("transport", None)
    return httpx.AsyncClient(transport=TracingTransport(transport, tracer=tracer), **client_kwargs)
