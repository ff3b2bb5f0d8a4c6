"""CLIENT spans for outbound calls made with httpx.

instrument_httpx() installs request/response event hooks on a client. While
a sampled unit of work is ambient, each request records a CLIENT span
"http <verb> <path>" carrying http.method, http.url and http.status_code.
Works for both httpx.Client and httpx.AsyncClient.

Example:
    >>> client = instrument_httpx(httpx.AsyncClient(base_url="https://payments"))
    >>> await client.post("/charges", json=body)   # traced when X-Try: on
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import httpx

from tryit.runtime.observability import SpanKind, Tracer

from .middleware import http_span_name

if TYPE_CHECKING:
    from tryit.runtime.observability import SpanToken

C = TypeVar("C", httpx.Client, httpx.AsyncClient)

# Request extension slot holding the open span
SPAN_EXTENSION = "tryit.span"


def _start(tracer: Tracer | None, request: httpx.Request) -> None:
    # Leaf span that never becomes active: a transport error skips the response hook
    token = (tracer or Tracer.current()).start_span(
        http_span_name(request.method, request.url.path), SpanKind.CLIENT,
        {"http.method": request.method, "http.url": str(request.url)}, activate=False,
    )
    if token is not None:
        request.extensions[SPAN_EXTENSION] = token


def _finish(tracer: Tracer | None, response: httpx.Response) -> None:
    token: SpanToken | None = response.request.extensions.pop(SPAN_EXTENSION, None)
    if token is None:
        return
    token.span.set_attribute("http.status_code", response.status_code)
    (tracer or Tracer.current()).end(token)


def instrument_httpx(client: C, tracer: Tracer | None = None) -> C:
    """Append tracing hooks to client.event_hooks and return the client."""
    hooks = client.event_hooks
    if isinstance(client, httpx.AsyncClient):
        async def on_request(request: httpx.Request) -> None:
            _start(tracer, request)

        async def on_response(response: httpx.Response) -> None:
            _finish(tracer, response)
    else:
        def on_request(request: httpx.Request) -> None:
            _start(tracer, request)

        def on_response(response: httpx.Response) -> None:
            _finish(tracer, response)

    client.event_hooks = {
        "request": [*hooks.get("request", ()), on_request],
        "response": [*hooks.get("response", ()), on_response],
    }
    return client
