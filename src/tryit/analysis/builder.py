"""Span tree builder: flat, unordered spans -> rooted forest of SpanNodes.

Roots are spans whose parent id is null, empty, all zeros, or not present
in the set. Children are ordered by start time, then span id, so the same
input always yields the same tree whatever order the spans arrived in.

Self duration is duration minus the direct children's durations, floored at
zero. Children that ran concurrently make this an approximation: their
summed duration can exceed the parent's wall time.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from tryit.runtime.observability import NANOS_PER_MS, SpanData, is_root_parent
from tryit.runtime.observability.logging import get_logger

from .models import SpanNode
from .parser import display_name, parse_method

log = get_logger("tryit.analysis.tree")


def round2(value: float) -> float:
    """Half-up rounding to 2 decimals."""
    return math.floor(value * 100 + 0.5) / 100


def percent_of(part_ms: int, total_ms: int) -> float:
    return 100.0 * part_ms / total_ms if total_ms > 0 else 0.0


def total_duration_ms(spans: Sequence[SpanData]) -> int:
    """Wall time of the trace: latest end minus earliest start, in whole ms.

    Never less than the longest single span, so no span exceeds 100%.
    """
    if not spans:
        return 0
    starts = [s.start_nanos for s in spans if s.start_nanos is not None]
    ends = [s.end_nanos for s in spans if s.end_nanos is not None]
    wall = max(0, max(ends) - min(starts)) // NANOS_PER_MS if starts and ends else 0
    return max(wall, max(s.duration_ms for s in spans))


def _order_key(spans: Sequence[SpanData], idx: int) -> tuple[bool, int, str, int]:
    span = spans[idx]
    return (span.start_nanos is None, span.start_nanos or 0, span.span_id, idx)


@dataclass(frozen=True, slots=True)
class SpanTree:
    """Built forest plus the figures every view needs."""

    roots: tuple[SpanNode, ...]
    total_duration_ms: int
    span_count: int

    def walk(self) -> Iterator[SpanNode]:
        """Pre-order, depth-first."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def flatten(self) -> list[SpanNode]:
        return list(self.walk())

    def __len__(self) -> int:
        return self.span_count


class SpanTreeBuilder:
    """Builds SpanTrees. Stateless; one instance can serve concurrent queries.

    Example:
        >>> tree = SpanTreeBuilder().build(trace.spans)
        >>> [n.display_name for n in tree.walk()]
        ['OrderController.place', 'OrderService.place', 'OrderRepository.save']
    """

    __slots__ = ()

    def build(self, spans: Sequence[SpanData], total_ms: int | None = None) -> SpanTree:
        if not spans:
            return SpanTree((), 0, 0)
        total = total_duration_ms(spans) if total_ms is None else total_ms

        # First occurrence wins the id; duplicates still become nodes of their own
        index: dict[str, int] = {}
        for i, span in enumerate(spans):
            index.setdefault(span.span_id, i)

        children: dict[int, list[int]] = {}
        roots: list[int] = []
        for i, span in enumerate(spans):
            parent = index.get(span.parent_id) if not is_root_parent(span.parent_id) else None
            if parent is None or parent == i:
                roots.append(i)
            else:
                children.setdefault(parent, []).append(i)
        for kids in children.values():
            kids.sort(key=lambda i: _order_key(spans, i))
        roots.sort(key=lambda i: _order_key(spans, i))

        order, attached, tops = self._layout(spans, roots, children)
        nodes: dict[int, SpanNode] = {}
        # Reverse pre-order: every child is built before its parent
        for i in reversed(order):
            nodes[i] = self._node(spans[i], tuple(nodes[c] for c in attached.get(i, ())), total)
        forest = tuple(nodes[i] for i in tops)
        log.debug("span tree built", span_count=len(spans), root_count=len(forest), total_duration_ms=total)
        return SpanTree(forest, total, len(spans))

    def _layout(
        self, spans: Sequence[SpanData], roots: list[int], children: dict[int, list[int]],
    ) -> tuple[list[int], dict[int, list[int]], list[int]]:
        """Pre-order visit from the roots. Spans caught in parent cycles are promoted to roots."""
        order: list[int] = []
        attached: dict[int, list[int]] = {}
        visited: set[int] = set()
        tops: list[int] = []

        def visit(root: int) -> None:
            tops.append(root)
            stack = [root]
            visited.add(root)
            while stack:
                i = stack.pop()
                order.append(i)
                kids = [c for c in children.get(i, ()) if c not in visited]
                visited.update(kids)
                if kids:
                    attached[i] = kids
                stack.extend(reversed(kids))

        for root in roots:
            visit(root)
        if len(visited) < len(spans):
            orphans = sorted((i for i in range(len(spans)) if i not in visited), key=lambda i: _order_key(spans, i))
            log.warning("cyclic parent links, promoting spans to roots", span_count=len(orphans))
            for i in orphans:
                if i not in visited:
                    visit(i)
        return order, attached, tops

    def _node(self, span: SpanData, kids: tuple[SpanNode, ...], total: int) -> SpanNode:
        duration = span.duration_ms
        self_ms = max(0, duration - sum(k.duration_ms for k in kids))
        info = parse_method(span)
        return SpanNode(
            span_id=span.span_id,
            parent_id=span.parent_id,
            name=span.name,
            display_name=display_name(span, info),
            kind=span.kind,
            class_name=info.class_name,
            method_name=info.method_name,
            parameters=info.parameters,
            start_nanos=span.start_nanos,
            duration_ms=duration,
            self_duration_ms=self_ms,
            percentage=round2(percent_of(duration, total)),
            self_percentage=round2(percent_of(self_ms, total)),
            attributes=dict(span.attributes),
            children=kids,
        )
