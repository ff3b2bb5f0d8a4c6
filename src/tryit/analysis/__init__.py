"""Trace analysis: tree reconstruction, bottleneck heuristics and the method ranking.

- SpanTreeBuilder: flat spans -> SpanNode forest with self durations
- IssueAnalyzer: severity-tagged findings over the flat span list
- MethodListService: self-duration ranking, paginated
"""

from .analyzer import DEFAULT_RULES, IssueAnalyzer, Rule, is_database_span, is_http_span
from .builder import SpanTree, SpanTreeBuilder, percent_of, round2, total_duration_ms
from .methods import DEFAULT_PAGE_SIZE, MethodListService, paginate, rank
from .models import (
    Issue,
    IssuesView,
    IssueType,
    MethodInfo,
    MethodItem,
    MethodPage,
    Parameter,
    Severity,
    SpanNode,
    TraceView,
    TryRecord,
    TryStatus,
)
from .parser import display_name, parse_method, parse_span_name

__all__ = [
    # Models
    "Parameter", "MethodInfo", "SpanNode", "Issue", "IssueType", "Severity",
    "TryStatus", "TryRecord", "TraceView", "IssuesView", "MethodItem", "MethodPage",
    # Tree
    "SpanTree", "SpanTreeBuilder", "total_duration_ms", "round2", "percent_of",
    "parse_method", "parse_span_name", "display_name",
    # Issues
    "IssueAnalyzer", "Rule", "DEFAULT_RULES", "is_database_span", "is_http_span",
    # Methods
    "MethodListService", "paginate", "rank", "DEFAULT_PAGE_SIZE",
]
