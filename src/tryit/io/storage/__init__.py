"""Trace store strategies.

Backends:
    - InMemoryTraceStore: Thread-safe, per-try partitions (default)
    - TempoTraceStore: Query-and-poll over a Tempo-compatible HTTP API

Both implement record()/fetch()/close() and degrade backend errors to "absent".
"""

from .base import TraceData, TraceStore
from .factory import create_exporter, create_store
from .memory import InMemoryTraceStore

__all__ = [
    "TraceData",
    "TraceStore",
    "InMemoryTraceStore",
    "create_store",
    "create_exporter",
    # Tempo (lazy import)
    "TempoClient",
    "TempoTraceStore",
    "build_query",
]


def __getattr__(name: str) -> object:
    """Lazy import the HTTP-backed store so the in-process path never loads httpx."""
    if name in ("TempoClient", "TempoTraceStore", "build_query"):
        from . import tempo
        return getattr(tempo, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
