"""Observability: spans, the instrumentation hook, exporters and structured logging."""

from .exporter import CompositeExporter, Exporter, NoOpExporter, OTLPBridge, StoreExporter, create_otlp_exporter
from .span import NANOS_PER_MS, TRY_ID_ATTRIBUTE, Span, SpanData, SpanKind, SpanStatus, is_root_parent
from .tracer import (
    ParameterInfo,
    SpanContextManager,
    SpanToken,
    Tracer,
    current_span,
    current_span_id,
    instrument_class,
    instrument_module,
    reset_tracer,
    traced,
)

__all__ = [
    # Spans
    "Span", "SpanData", "SpanKind", "SpanStatus", "NANOS_PER_MS", "TRY_ID_ATTRIBUTE", "is_root_parent",
    # Hook
    "Tracer", "SpanToken", "SpanContextManager", "ParameterInfo", "traced",
    "instrument_class", "instrument_module", "current_span", "current_span_id", "reset_tracer",
    # Exporters
    "Exporter", "NoOpExporter", "StoreExporter", "CompositeExporter", "OTLPBridge", "create_otlp_exporter",
]
