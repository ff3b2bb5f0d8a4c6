"""Bottleneck heuristics over the flat span list.

Every span is checked against every rule; a slow database or http span is
usually reported twice (its specific rule plus the generic one). Severity
depends only on the span's share of the trace duration.

    rule                  match                                   share  duration
    slow-database-call    name has repository/jdbc/query/execute/db  > 50%  > 500ms
    slow-outbound-call    name starts with http, or http attributes  > 30%  > 300ms
    slow-span-generic     any span                                   > 20%  > 100ms
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from tryit.runtime.observability import SpanData
from tryit.runtime.observability.logging import get_logger

from .builder import percent_of, round2, total_duration_ms
from .models import Issue, IssueType, Severity

log = get_logger("tryit.analysis.issues")

_DB_VOCABULARY = ("repository", "jdbc", "query", "execute", "db")
_HTTP_ATTRIBUTES = ("http.method", "http.status_code")


def is_database_span(span: SpanData) -> bool:
    name = span.name.lower()
    return any(word in name for word in _DB_VOCABULARY)


def is_http_span(span: SpanData) -> bool:
    if span.name.startswith(("HTTP", "http")):
        return True
    lowered = span.name.lower()
    return any(key in lowered or key in span.attributes for key in _HTTP_ATTRIBUTES)


@dataclass(frozen=True, slots=True)
class Rule:
    """One heuristic: a span matcher plus share and duration thresholds (both exclusive)."""

    type: IssueType
    label: str
    min_percentage: float
    min_duration_ms: int
    recommendation: str
    matches: Callable[[SpanData], bool] = lambda _: True

    def fires(self, span: SpanData, percentage: float) -> bool:
        return percentage > self.min_percentage and span.duration_ms > self.min_duration_ms and self.matches(span)


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(IssueType.SLOW_DATABASE_CALL, "DB query", 50, 500,
         "Check index usage and query optimization", is_database_span),
    Rule(IssueType.SLOW_OUTBOUND_CALL, "HTTP call", 30, 300,
         "Optimize external API calls or add caching", is_http_span),
    Rule(IssueType.SLOW_SPAN_GENERIC, "Span", 20, 100,
         "Review method implementation for optimization"),
)


class IssueAnalyzer:
    """Runs the rules over every span, in input order, rules in declaration order.

    Example:
        >>> issues = IssueAnalyzer().analyze(trace.spans)
        >>> [(i.type, i.severity) for i in issues]
        [('slow-database-call', 'high'), ('slow-span-generic', 'high')]
    """

    __slots__ = ("rules",)

    def __init__(self, rules: Sequence[Rule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def analyze(self, spans: Sequence[SpanData], total_ms: int | None = None) -> list[Issue]:
        if not spans:
            return []
        total = total_duration_ms(spans) if total_ms is None else total_ms
        if total <= 0:
            return []
        issues = [
            self._issue(rule, span, pct)
            for span in spans
            if (pct := percent_of(span.duration_ms, total)) > 0
            for rule in self.rules
            if rule.fires(span, pct)
        ]
        log.debug("issues detected", issue_count=len(issues), span_count=len(spans))
        return issues

    def _issue(self, rule: Rule, span: SpanData, percentage: float) -> Issue:
        duration = span.duration_ms
        return Issue(
            type=rule.type,
            severity=Severity.from_percentage(percentage),
            summary=f"{rule.label} takes {percentage:.1f}% of total time ({duration}ms)",
            span_id=span.span_id,
            span_name=span.name,
            duration_ms=duration,
            percentage=round2(percentage),
            evidence=(f"duration: {duration}ms", f"kind: {span.kind.value}", f"name: {span.name}"),
            recommendation=rule.recommendation,
        )
