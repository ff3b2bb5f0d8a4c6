"""ASGI middleware applying the sampler to every HTTP request.

For a marked request (X-Try: on) the middleware:
- adopts a carried X-Try-Id or generates a fresh try id
- registers the try and installs its context for the whole request
- records a SERVER span "http <verb> <path>" with method, url and status
- returns the try id in the X-Try-Id response header

Unmarked requests run with the context explicitly cleared. A malformed
carried try id is answered with 400 before the application runs.

Example:
    >>> app = FastAPI()
    >>> app.add_middleware(TryMiddleware, sampler=Sampler.from_settings(settings, registry))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.datastructures import URL, Headers, MutableHeaders
from starlette.responses import JSONResponse

from tryit.foundation.errors import InvalidTryIdError
from tryit.runtime.context import TryContext
from tryit.runtime.observability import SpanKind, Tracer
from tryit.runtime.observability.logging import get_logger

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from tryit.runtime.sampling import Sampler

log = get_logger("tryit.http")


def http_span_name(method: str, path: str) -> str:
    return f"http {method.lower()} {path}"


class TryMiddleware:
    """Pure ASGI middleware; the response body is streamed through untouched.

    Args:
        app: Wrapped application
        sampler: Marker decision and try registration
        tracer: Span source; the global tracer when omitted
    """

    def __init__(self, app: ASGIApp, sampler: Sampler, tracer: Tracer | None = None) -> None:
        self.app = app
        self.sampler = sampler
        self.tracer = tracer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        try:
            handle = self.sampler.decide(headers.get(self.sampler.header_name),
                                         headers.get(self.sampler.try_id_header))
        except InvalidTryIdError as e:
            log.warning("rejected malformed try id", rejected=e.error.details)
            response = JSONResponse({"error": e.error.model_dump(mode="json")}, status_code=400)
            await response(scope, receive, send)
            return

        if handle is None:
            with TryContext.set(None):
                await self.app(scope, receive, send)
            return

        self.sampler.register(handle)
        try_id = str(handle)
        tracer = self.tracer or Tracer.current()
        method = scope.get("method", "GET")
        status: dict[str, int] = {}

        async def send_with_try_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
                MutableHeaders(scope=message)[self.sampler.try_id_header] = try_id
            await send(message)

        with TryContext.set(handle):
            token = tracer.start_span(
                http_span_name(method, scope.get("path", "/")), SpanKind.SERVER,
                {"http.method": method, "http.url": str(URL(scope=scope))},
            )
            error: BaseException | None = None
            try:
                await self.app(scope, receive, send_with_try_id)
            except BaseException as e:
                error = e
                raise
            finally:
                if token is not None:
                    token.span.set_attribute("http.status_code", status.get("code", 500))
                tracer.end(token, error)
