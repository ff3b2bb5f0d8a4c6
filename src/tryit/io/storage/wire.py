"""Wire format of the external trace backend: batches -> scopeSpans -> spans.

    {"batches": [{"resource": {"attributes": [...]},
                  "scopeSpans": [{"scope": {"name": "..."},
                                  "spans": [{"traceId", "spanId", "parentSpanId", "name", "kind",
                                             "startTimeUnixNano", "endTimeUnixNano", "attributes"}]}]}]}

Attribute values arrive as {"stringValue" | "intValue" | "doubleValue" | "boolValue"}
and are flattened to strings. Int64 fields may be JSON strings; they are coerced.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tryit.runtime.observability import SpanData, SpanKind

from .base import TraceData


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AnyValue(_WireModel):
    string_value: str | None = None
    int_value: int | None = None
    double_value: float | None = None
    bool_value: bool | None = None

    def as_string(self) -> str | None:
        """First non-null representation, in string/int/double/bool order."""
        if self.string_value is not None:
            return self.string_value
        if self.int_value is not None:
            return str(self.int_value)
        if self.double_value is not None:
            return str(self.double_value)
        if self.bool_value is not None:
            return "true" if self.bool_value else "false"
        return None


class KeyValue(_WireModel):
    key: str | None = None
    value: AnyValue | None = None


class WireSpan(_WireModel):
    trace_id: str | None = None
    span_id: str
    parent_span_id: str | None = None
    name: str = ""
    kind: str | None = None
    start_time_unix_nano: int | None = None
    end_time_unix_nano: int | None = None
    duration_nanos: int | None = None
    attributes: list[KeyValue] | None = None


class Scope(_WireModel):
    name: str | None = None


class ScopeSpans(_WireModel):
    scope: Scope | None = None
    spans: list[WireSpan] | None = None


class Resource(_WireModel):
    attributes: list[KeyValue] | None = None


class Batch(_WireModel):
    resource: Resource | None = None
    scope_spans: list[ScopeSpans] | None = None


class WireTrace(_WireModel):
    batches: list[Batch] | None = None


class SearchHit(_WireModel):
    trace_id: str = Field(alias="traceID")


class SearchResponse(_WireModel):
    traces: list[SearchHit] | None = None


_KINDS: dict[str, SpanKind] = {
    "SPAN_KIND_INTERNAL": SpanKind.INTERNAL,
    "SPAN_KIND_SERVER": SpanKind.SERVER,
    "SPAN_KIND_CLIENT": SpanKind.CLIENT,
    "SPAN_KIND_PRODUCER": SpanKind.PRODUCER,
    "SPAN_KIND_CONSUMER": SpanKind.CONSUMER,
}


def map_kind(kind: str | None) -> SpanKind:
    """Wire kind to SpanKind; unknown or unspecified kinds count as internal."""
    return _KINDS.get(kind or "", SpanKind.INTERNAL)


def flatten_attributes(attrs: list[KeyValue] | None) -> dict[str, str]:
    out: dict[str, str] = {}
    for kv in attrs or ():
        if kv.key is None or kv.value is None:
            continue
        if (value := kv.value.as_string()) is not None:
            out[kv.key] = value
    return out


def to_span_data(span: WireSpan, trace_id: str, try_id: str | None = None) -> SpanData:
    duration = span.duration_nanos
    if duration is None and span.start_time_unix_nano is not None and span.end_time_unix_nano is not None:
        duration = max(0, span.end_time_unix_nano - span.start_time_unix_nano)
    attrs = flatten_attributes(span.attributes)
    return SpanData(
        span_id=span.span_id, trace_id=span.trace_id or trace_id, name=span.name,
        parent_id=span.parent_span_id or None, kind=map_kind(span.kind),
        start_nanos=span.start_time_unix_nano, end_nanos=span.end_time_unix_nano,
        duration_nanos=duration, attributes=attrs, try_id=attrs.get("try_id", try_id),
    )


def convert_trace(trace: WireTrace, trace_id: str, try_id: str | None = None) -> TraceData:
    """Flatten every span of every batch and scope, in wire order."""
    spans = [
        to_span_data(span, trace_id, try_id)
        for batch in trace.batches or ()
        for scope_spans in batch.scope_spans or ()
        for span in scope_spans.spans or ()
    ]
    return TraceData(trace_id, tuple(spans))
