"""Span types for recording calls of a sampled unit of work.

A Span is the mutable, in-flight record opened by the instrumentation hook.
Ending it produces a SpanData: the immutable record that exporters, stores
and the tree builder consume.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from tryit.foundation.errors import Attributes, classify_exception

NANOS_PER_MS = 1_000_000

# Attribute carrying the try id on every recorded span (backend query key)
TRY_ID_ATTRIBUTE = "try_id"


class SpanKind(StrEnum):
    """Span role, aligned with the OpenTelemetry kinds."""

    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"
    PRODUCER = "producer"
    CONSUMER = "consumer"


class SpanStatus(StrEnum):
    """Span completion status."""

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


def new_span_id() -> str:
    """64-bit span id, hex-rendered."""
    return secrets.token_hex(8)


@dataclass(frozen=True, slots=True)
class SpanData:
    """One closed span. Never mutated once built.

    Attributes:
        span_id: Unique within its trace
        trace_id: Trace the span belongs to
        parent_id: Parent span id; None, "" or all-zero mean root
        name: Span name (e.g. "OrderService.place" or "http get /orders")
        kind: Span role
        start_nanos: Epoch start, None if the source did not report it
        end_nanos: Epoch end, None if the source did not report it
        duration_nanos: Pre-computed duration used when start/end are missing
        attributes: Ordered key -> string mapping
        status: Completion status
        try_id: Owning try id, when known
    """

    span_id: str
    trace_id: str
    name: str
    parent_id: str | None = None
    kind: SpanKind = SpanKind.INTERNAL
    start_nanos: int | None = None
    end_nanos: int | None = None
    duration_nanos: int | None = None
    attributes: Mapping[str, str] = field(default_factory=dict)
    status: SpanStatus = SpanStatus.UNSET
    try_id: str | None = None

    @property
    def duration_ms(self) -> int:
        """Whole milliseconds; end - start when both are known, else the reported duration."""
        if self.start_nanos is not None and self.end_nanos is not None:
            return max(0, self.end_nanos - self.start_nanos) // NANOS_PER_MS
        return max(0, self.duration_nanos or 0) // NANOS_PER_MS

    @property
    def is_root(self) -> bool:
        return is_root_parent(self.parent_id)


def is_root_parent(parent_id: str | None) -> bool:
    """Null, empty and zero-valued parent ids all denote a root."""
    return not parent_id or not parent_id.strip("0")


@dataclass(slots=True)
class Span:
    """In-flight span. Attributes are coerced to strings as they are set.

    Example:
        >>> span = Span(name="OrderService.place", trace_id=handle.value.hex)
        >>> span.set_attribute("code.function", "place")
        >>> data = span.end()
    """

    name: str
    trace_id: str
    kind: SpanKind = SpanKind.INTERNAL
    parent_id: str | None = None
    span_id: str = field(default_factory=new_span_id)
    start_nanos: int = field(default_factory=time.time_ns)
    end_nanos: int | None = None
    attributes: Attributes = field(default_factory=dict)
    status: SpanStatus = SpanStatus.UNSET
    error: str | None = None
    try_id: str | None = None

    def set_attribute(self, key: str, value: object) -> Span:
        """Set attribute, returns self for chaining."""
        self.attributes[key] = "" if value is None else str(value)
        return self

    def set_attributes(self, attrs: Mapping[str, object]) -> Span:
        for k, v in attrs.items():
            self.set_attribute(k, v)
        return self

    def record_exception(self, exc: BaseException) -> Span:
        """Mark the span failed with low-cardinality error attributes. Does not swallow anything."""
        self.status, self.error = SpanStatus.ERROR, str(exc) or type(exc).__name__
        return self.set_attributes({
            "error": "true",
            "error.type": type(exc).__qualname__,
            "error.code": classify_exception(exc).value,
            "error.message": self.error[:200],
        })

    def end(self, status: SpanStatus | None = None) -> SpanData:
        """Close the span and freeze it. Ending twice returns the same timing."""
        if self.end_nanos is None:
            self.end_nanos = max(time.time_ns(), self.start_nanos)
        if status is not None:
            self.status = status
        elif self.status is SpanStatus.UNSET:
            self.status = SpanStatus.OK
        return SpanData(
            span_id=self.span_id, trace_id=self.trace_id, name=self.name, parent_id=self.parent_id,
            kind=self.kind, start_nanos=self.start_nanos, end_nanos=self.end_nanos,
            duration_nanos=self.end_nanos - self.start_nanos,
            attributes=MappingProxyType(dict(self.attributes)), status=self.status, try_id=self.try_id,
        )
