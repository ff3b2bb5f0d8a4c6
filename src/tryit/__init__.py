"""tryit - opt-in, request-scoped trace capture and analysis.

Mark one request with ``X-Try: on`` and tryit records that request's calls
(and nothing else), then serves the recorded spans back as a call tree,
bottleneck findings and a self-duration ranking.

Quick Start (FastAPI):
    >>> from tryit import create_app
    >>> app = create_app()          # query API under /tries, sampling middleware installed
    >>> # curl -H "X-Try: on" ...   -> response header X-Try-Id: <try id>
    >>> # curl /tries/<try id>/issues

Instrumenting your own code:
    >>> from tryit import traced
    >>>
    >>> class OrderService:
    ...     @traced()
    ...     def place(self, sku: str, qty: int) -> Order: ...
    >>>
    >>> # TRYIT_INSTRUMENTATION_ALLOWED_NAMESPACES=shop.services

Carrying the try across a thread pool:
    >>> from tryit import ContextThreadPool
    >>> with ContextThreadPool(4) as pool:
    ...     pool.submit(reprice, order).result()   # sees the submitting request's try id

Reading results without HTTP:
    >>> from tryit import InMemoryTraceStore, TryResultService
    >>> service = TryResultService(store)
    >>> page = await service.methods(try_id, page=0, size=5)
"""

from __future__ import annotations

__version__ = "0.1.0"

# Foundation
from .foundation.config import TryitSettings, clear_settings_cache, get_settings
from .foundation.errors import (
    ErrorCode,
    InvalidPaginationError,
    InvalidTryIdError,
    TryError,
    TryException,
    classify_exception,
)

# Context propagation
from .runtime.context import CapturedContext, Scope, TraceHandle, TryContext, bind, capture
from .runtime.concurrency import ContextThreadPool, run_in_thread

# Instrumentation
from .runtime.observability import (
    Span,
    SpanData,
    SpanKind,
    Tracer,
    instrument_class,
    instrument_module,
    traced,
)
from .runtime.observability.logging import configure_logging, get_logger

# Sampling and message frames
from .runtime.sampling import Sampler
from .runtime.propagation import (
    Envelope,
    InboundFrameInterceptor,
    OutboundFrameInterceptor,
    PublisherNotifier,
    SessionRegistry,
)

# Storage
from .io.storage import InMemoryTraceStore, TraceData, TraceStore, create_exporter, create_store

# Analysis
from .analysis import (
    Issue,
    IssueAnalyzer,
    MethodListService,
    MethodPage,
    SpanNode,
    SpanTreeBuilder,
    TryRecord,
    TryStatus,
)

# Results
from .service import TryRegistry, TryResultService

# HTTP
from .ext.http import TryMiddleware, instrument_httpx

__all__ = [
    "__version__",
    # Foundation
    "TryitSettings", "get_settings", "clear_settings_cache",
    "ErrorCode", "TryError", "TryException", "InvalidTryIdError", "InvalidPaginationError", "classify_exception",
    # Context
    "TraceHandle", "TryContext", "Scope", "CapturedContext", "capture", "bind",
    "ContextThreadPool", "run_in_thread",
    # Instrumentation
    "Tracer", "Span", "SpanData", "SpanKind", "traced", "instrument_class", "instrument_module",
    "configure_logging", "get_logger",
    # Sampling and frames
    "Sampler", "Envelope", "InboundFrameInterceptor", "OutboundFrameInterceptor",
    "PublisherNotifier", "SessionRegistry",
    # Storage
    "TraceStore", "TraceData", "InMemoryTraceStore", "create_store", "create_exporter",
    # Analysis
    "SpanTreeBuilder", "SpanNode", "IssueAnalyzer", "Issue", "MethodListService", "MethodPage",
    "TryRecord", "TryStatus",
    # Results
    "TryRegistry", "TryResultService",
    # HTTP
    "TryMiddleware", "instrument_httpx", "create_app",
]


def __getattr__(name: str) -> object:
    if name == "create_app":
        from .ext.http.app import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
