"""Shared fixtures: quiet logging, a clean global tracer, span factories."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest

from tryit.foundation.config import clear_settings_cache
from tryit.io.storage import InMemoryTraceStore
from tryit.runtime.observability import NANOS_PER_MS, SpanData, SpanKind, StoreExporter, Tracer, reset_tracer
from tryit.runtime.observability.logging import configure_logging

# Epoch origin for synthetic spans; any fixed value works
T0 = 1_700_000_000_000_000_000

SpanFactory = Callable[..., SpanData]


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    configure_logging("none")
    yield
    configure_logging("none")


@pytest.fixture(autouse=True)
def clean_globals() -> Iterator[None]:
    """Reset the global tracer and cached settings around each test."""
    reset_tracer()
    clear_settings_cache()
    yield
    reset_tracer()
    clear_settings_cache()


@pytest.fixture
def store() -> InMemoryTraceStore:
    return InMemoryTraceStore()


@pytest.fixture
def tracer(store: InMemoryTraceStore) -> Tracer:
    """Global tracer recording into the in-memory store, tracing the "shop" namespace."""
    t = Tracer(exporter=StoreExporter(store), allowed_namespaces=("shop",))
    t.configure_global()
    return t


@pytest.fixture
def make_span() -> SpanFactory:
    """Build a closed span from millisecond offsets relative to T0."""

    def factory(
        span_id: str,
        start_ms: int | None,
        end_ms: int | None,
        parent_id: str | None = None,
        *,
        name: str | None = None,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: dict[str, str] | None = None,
        duration_ms: int | None = None,
        trace_id: str = "trace-1",
        try_id: str | None = None,
    ) -> SpanData:
        return SpanData(
            span_id=span_id,
            trace_id=trace_id,
            name=name or span_id,
            parent_id=parent_id,
            kind=kind,
            start_nanos=None if start_ms is None else T0 + start_ms * NANOS_PER_MS,
            end_nanos=None if end_ms is None else T0 + end_ms * NANOS_PER_MS,
            duration_nanos=None if duration_ms is None else duration_ms * NANOS_PER_MS,
            attributes=attributes or {},
            try_id=try_id,
        )

    return factory
