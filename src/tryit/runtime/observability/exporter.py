"""Span exporters: where closed spans go.

- StoreExporter: Records into an in-process trace store
- CompositeExporter: Fan out to several exporters
- OTLPBridge: OpenTelemetry Protocol for an external backend (optional dep)
- NoOpExporter: Silent export for testing/disabled tracing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from tryit.runtime.observability.logging import get_logger

from .span import SpanKind, SpanStatus, TRY_ID_ATTRIBUTE

if TYPE_CHECKING:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import ReadableSpan

    from tryit.io.storage import TraceStore

    from .span import SpanData

log = get_logger("tryit.exporter")


@runtime_checkable
class Exporter(Protocol):
    """Receives closed spans. Must be thread-safe for concurrent exports."""

    def export(self, spans: list[SpanData]) -> None: ...

    def shutdown(self) -> None: ...


@dataclass(slots=True)
class NoOpExporter:
    """Silent exporter for testing/disabled tracing."""

    def export(self, spans: list[SpanData]) -> None:
        pass

    def shutdown(self) -> None:
        pass


@dataclass(slots=True)
class StoreExporter:
    """Records each span into a trace store, partitioned by its try id."""

    store: TraceStore

    def export(self, spans: list[SpanData]) -> None:
        for span in spans:
            self.store.record(span)

    def shutdown(self) -> None:
        pass


@dataclass(slots=True)
class CompositeExporter:
    """Fan-out to multiple exporters. One failing exporter does not stop the others."""

    exporters: list[Exporter] = field(default_factory=list)

    def export(self, spans: list[SpanData]) -> None:
        for e in self.exporters:
            try:
                e.export(spans)
            except Exception as exc:  # noqa: BLE001 - export must never reach application code
                log.warning("span export failed", exporter=type(e).__name__, error=str(exc))

    def shutdown(self) -> None:
        for e in self.exporters:
            e.shutdown()


# ─────────────────────────────────────────────────────────────────────────────
# OTLP (optional: pip install tryit[otel])
# ─────────────────────────────────────────────────────────────────────────────


_OTEL_KINDS = {SpanKind.INTERNAL: "INTERNAL", SpanKind.SERVER: "SERVER", SpanKind.CLIENT: "CLIENT",
               SpanKind.PRODUCER: "PRODUCER", SpanKind.CONSUMER: "CONSUMER"}


@dataclass(slots=True)
class OTLPBridge:
    """Exports SpanData over OTLP/gRPC so an external backend can index it by try_id."""

    endpoint: str
    service_name: str
    insecure: bool = True
    headers: dict[str, str] | None = None
    _exporter: OTLPSpanExporter | None = field(default=None, init=False, repr=False)
    _resource: Resource | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource

        self._resource = Resource.create({SERVICE_NAME: self.service_name})
        self._exporter = OTLPSpanExporter(endpoint=self.endpoint, insecure=self.insecure, headers=self.headers or {})

    def export(self, spans: list[SpanData]) -> None:
        if self._exporter is None:
            return
        self._exporter.export([self._to_otel_span(s) for s in spans])

    def _to_otel_span(self, span: SpanData) -> ReadableSpan:
        from opentelemetry.sdk.trace import ReadableSpan
        from opentelemetry.sdk.util.instrumentation import InstrumentationScope
        from opentelemetry.trace import SpanContext, TraceFlags
        from opentelemetry.trace import SpanKind as OtelSpanKind
        from opentelemetry.trace.status import Status, StatusCode

        trace_id = int(span.trace_id, 16)
        ctx = SpanContext(trace_id=trace_id, span_id=int(span.span_id, 16), is_remote=False,
                          trace_flags=TraceFlags(TraceFlags.SAMPLED))
        parent = None if span.is_root else SpanContext(
            trace_id=trace_id, span_id=int(span.parent_id, 16), is_remote=False,  # type: ignore[arg-type]
            trace_flags=TraceFlags(TraceFlags.SAMPLED))
        status = (Status(StatusCode.ERROR, span.attributes.get("error.message", "")) if span.status is SpanStatus.ERROR
                  else Status(StatusCode.OK) if span.status is SpanStatus.OK else Status(StatusCode.UNSET))
        attrs = dict(span.attributes) | ({TRY_ID_ATTRIBUTE: span.try_id} if span.try_id else {})

        return ReadableSpan(name=span.name, context=ctx, parent=parent, resource=self._resource,
                            attributes=attrs, kind=OtelSpanKind[_OTEL_KINDS[span.kind]], status=status,
                            start_time=span.start_nanos, end_time=span.end_nanos,
                            instrumentation_scope=InstrumentationScope(name="tryit"))

    def shutdown(self) -> None:
        if self._exporter is not None:
            self._exporter.shutdown()


def create_otlp_exporter(endpoint: str, service_name: str) -> Exporter:
    """Create an OTLP exporter (requires the otel extra)."""
    try:
        return OTLPBridge(endpoint=endpoint, service_name=service_name)
    except ImportError as e:
        raise ImportError("OTLP export requires: pip install tryit[otel]") from e
