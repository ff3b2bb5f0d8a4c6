"""Tests for CLIENT spans around httpx calls."""

from __future__ import annotations

import httpx
import pytest

from tryit.ext.http import SPAN_EXTENSION, instrument_httpx
from tryit.io.storage import InMemoryTraceStore
from tryit.runtime.context import TraceHandle, TryContext
from tryit.runtime.observability import SpanKind, Tracer, current_span


def inventory(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/down":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(404 if request.url.path == "/missing" else 200, json={"ok": True})


@pytest.mark.asyncio
async def test_async_client_records_client_span(tracer: Tracer, store: InMemoryTraceStore) -> None:
    handle = TraceHandle.new()
    async with instrument_httpx(httpx.AsyncClient(transport=httpx.MockTransport(inventory))) as client:
        with TryContext.set(handle):
            with tracer.span("OrderService.place") as parent:
                response = await client.get("http://inventory/stock/7?fresh=1")
    assert response.status_code == 200
    assert SPAN_EXTENSION not in response.request.extensions

    spans = {s.name: s for s in store.get(str(handle)).spans}
    call = spans["http get /stock/7"]
    assert call.kind is SpanKind.CLIENT
    assert call.parent_id == parent.span_id
    assert call.attributes["http.method"] == "GET"
    assert call.attributes["http.url"] == "http://inventory/stock/7?fresh=1"
    assert call.attributes["http.status_code"] == "200"


def test_sync_client_records_status(tracer: Tracer, store: InMemoryTraceStore) -> None:
    handle = TraceHandle.new()
    with instrument_httpx(httpx.Client(transport=httpx.MockTransport(inventory))) as client:
        with TryContext.set(handle):
            client.post("http://inventory/missing")
    (span,) = store.get(str(handle)).spans
    assert span.name == "http post /missing"
    assert span.attributes["http.status_code"] == "404"


def test_unsampled_call_records_nothing(tracer: Tracer, store: InMemoryTraceStore) -> None:
    with instrument_httpx(httpx.Client(transport=httpx.MockTransport(inventory))) as client:
        response = client.get("http://inventory/stock/1")
    assert SPAN_EXTENSION not in response.request.extensions
    assert len(store) == 0


def test_transport_error_leaves_no_active_span(tracer: Tracer, store: InMemoryTraceStore) -> None:
    with instrument_httpx(httpx.Client(transport=httpx.MockTransport(inventory))) as client:
        with TryContext.set(TraceHandle.new()):
            with pytest.raises(httpx.ConnectError):
                client.get("http://inventory/down")
            assert current_span() is None
    assert len(store) == 0


def test_existing_hooks_are_kept(tracer: Tracer) -> None:
    seen: list[str] = []
    client = httpx.Client(transport=httpx.MockTransport(inventory),
                          event_hooks={"request": [lambda r: seen.append(r.url.path)]})
    instrument_httpx(client)
    client.get("http://inventory/a")
    client.close()
    assert seen == ["/a"]
    assert len(client.event_hooks["request"]) == 2
