"""HTTP integration: sampling middleware, httpx client spans and the result query API."""

from .client import SPAN_EXTENSION, instrument_httpx
from .middleware import TryMiddleware, http_span_name

__all__ = ["TryMiddleware", "http_span_name", "instrument_httpx", "SPAN_EXTENSION", "create_app", "router"]


def __getattr__(name: str) -> object:
    """Lazy import the FastAPI app so middleware users need not load fastapi."""
    if name in ("create_app", "router"):
        from . import app
        return getattr(app, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
