"""Strategy selection: which store answers fetch(), and where spans are exported."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tryit.runtime.observability import NoOpExporter, StoreExporter, create_otlp_exporter
from tryit.runtime.observability.logging import get_logger

from .memory import InMemoryTraceStore

if TYPE_CHECKING:
    from tryit.foundation.config import TryitSettings
    from tryit.runtime.observability import Exporter

    from .base import TraceStore

log = get_logger("tryit.store")


def create_store(settings: TryitSettings) -> TraceStore:
    """In-process store by default; the Tempo-backed store when storage.backend is "tempo"."""
    if settings.storage.backend == "tempo":
        from .tempo import TempoTraceStore
        return TempoTraceStore.from_settings(settings.tempo)
    return InMemoryTraceStore(settings.storage.max_spans_per_trace, settings.storage.max_traces)


def create_exporter(settings: TryitSettings, store: TraceStore) -> Exporter:
    """Exporter that makes recorded spans visible to store.fetch()."""
    if isinstance(store, InMemoryTraceStore):
        return StoreExporter(store)
    if endpoint := settings.tempo.otlp_endpoint:
        return create_otlp_exporter(endpoint, settings.service_name)
    log.warning("external backend selected without otlp_endpoint; spans are not exported by this process")
    return NoOpExporter()
