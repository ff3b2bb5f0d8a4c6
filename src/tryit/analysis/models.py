"""Read-view models served by the query surface.

All views serialize with camelCase keys (spanId, durationMs, hasMore, ...)
and accept snake_case field names on construction. Instances are frozen:
a tree or issue list is built once per query and never mutated afterwards.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from tryit.runtime.observability import SpanKind


class _ViewModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ─────────────────────────────────────────────────────────────────────────────
# Trace tree
# ─────────────────────────────────────────────────────────────────────────────


class Parameter(_ViewModel):
    """Declared parameter of a traced call. Empty strings when unknown."""

    type: str = ""
    name: str = ""


class MethodInfo(_ViewModel):
    """Class, method and parameters resolved from a span's attributes or name."""

    class_name: str | None = None
    method_name: str | None = None
    parameters: tuple[Parameter, ...] = ()


class SpanNode(_ViewModel):
    """A span placed in the call tree, with durations relative to the whole trace.

    Attributes:
        span_id: Span id, unique within the trace
        parent_id: Declared parent; a root when None or when the parent is absent
        name: Raw span name
        display_name: "Class.method", "http get /path", or the raw name
        kind: Span role
        class_name: Simple class name, "HTTP" for http spans
        method_name: Method name
        parameters: Declared parameters in order
        start_nanos: Epoch start when known
        duration_ms: Whole-millisecond duration
        self_duration_ms: duration_ms minus the direct children's durations, floored at 0
        percentage: 100 * duration / trace total, 2 decimals
        self_percentage: 100 * self duration / trace total, 2 decimals
        attributes: Span attributes
        children: Child nodes ordered by start time, then span id
    """

    span_id: str
    parent_id: str | None = None
    name: str
    display_name: str
    kind: SpanKind = SpanKind.INTERNAL
    class_name: str | None = None
    method_name: str | None = None
    parameters: tuple[Parameter, ...] = ()
    start_nanos: int | None = None
    duration_ms: int = 0
    self_duration_ms: int = 0
    percentage: float = 0.0
    self_percentage: float = 0.0
    attributes: dict[str, str] = Field(default_factory=dict)
    children: tuple[SpanNode, ...] = ()


# ─────────────────────────────────────────────────────────────────────────────
# Issues
# ─────────────────────────────────────────────────────────────────────────────


class IssueType(StrEnum):
    SLOW_DATABASE_CALL = "slow-database-call"
    SLOW_OUTBOUND_CALL = "slow-outbound-call"
    SLOW_SPAN_GENERIC = "slow-span-generic"


class Severity(StrEnum):
    """Issue severity, derived from the span's share of the trace duration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_percentage(cls, percentage: float) -> Severity:
        if percentage >= 75:
            return cls.CRITICAL
        if percentage >= 50:
            return cls.HIGH
        if percentage >= 25:
            return cls.MEDIUM
        return cls.LOW


class Issue(_ViewModel):
    """One bottleneck finding for one span."""

    model_config = ConfigDict(
        json_schema_extra={
            "title": "Issue",
            "examples": [{
                "type": "slow-database-call", "severity": "high",
                "summary": "DB query takes 60.0% of total time (600ms)",
                "spanName": "OrderRepository.findAll", "durationMs": 600,
                "evidence": ["duration: 600ms", "kind: internal", "name: OrderRepository.findAll"],
                "recommendation": "Check index usage and query optimization",
            }],
        },
    )

    type: IssueType
    severity: Severity
    summary: str
    span_id: str | None = None
    span_name: str
    duration_ms: int
    percentage: float = 0.0
    evidence: tuple[str, ...] = ()
    recommendation: str


# ─────────────────────────────────────────────────────────────────────────────
# Views
# ─────────────────────────────────────────────────────────────────────────────


class TryStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TryRecord(_ViewModel):
    """Summary of one try: status plus counts.

    Pending until the store returns spans; failed only when analysing the
    fetched spans raised.
    """

    try_id: str
    trace_id: str | None = None
    status: TryStatus = TryStatus.PENDING
    status_code: int | None = None
    created_at: datetime | None = None
    analyzed_at: datetime | None = None
    total_duration_ms: int = 0
    span_count: int = 0
    issue_count: int = 0
    error_message: str | None = None


class TraceView(_ViewModel):
    """Call tree of one try (no issue analysis)."""

    try_id: str
    trace_id: str | None = None
    status: TryStatus = TryStatus.PENDING
    total_duration_ms: int = 0
    span_count: int = 0
    spans: tuple[SpanNode, ...] = ()


class IssuesView(_ViewModel):
    """Findings of one try (no tree)."""

    try_id: str
    trace_id: str | None = None
    status: TryStatus = TryStatus.PENDING
    issues: tuple[Issue, ...] = ()

    @computed_field
    @property
    def issue_count(self) -> int:
        return len(self.issues)


class MethodItem(_ViewModel):
    """One traced call in the self-duration ranking."""

    span_id: str
    name: str
    display_name: str
    class_name: str | None = None
    method_name: str | None = None
    parameters: tuple[Parameter, ...] = ()
    duration_ms: int = 0
    self_duration_ms: int = 0
    self_percentage: float = 0.0


class MethodPage(_ViewModel):
    """One page of the self-duration ranking. All zeros when there is no trace yet."""

    try_id: str | None = None
    trace_id: str | None = None
    total_duration_ms: int = 0
    total_count: int = 0
    page: Annotated[int, Field(ge=0)] = 0
    size: Annotated[int, Field(ge=1)] = 5
    has_more: bool = False
    methods: tuple[MethodItem, ...] = ()
