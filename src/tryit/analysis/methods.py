"""Method list: every traced call ranked by self duration, paginated."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tryit.runtime.observability.logging import get_logger

from .builder import SpanTree, SpanTreeBuilder
from .models import MethodItem, MethodPage, SpanNode

if TYPE_CHECKING:
    from tryit.io.storage import TraceStore

log = get_logger("tryit.analysis.methods")

DEFAULT_PAGE_SIZE = 5


def _item(node: SpanNode) -> MethodItem:
    return MethodItem(
        span_id=node.span_id, name=node.name, display_name=node.display_name,
        class_name=node.class_name, method_name=node.method_name, parameters=node.parameters,
        duration_ms=node.duration_ms, self_duration_ms=node.self_duration_ms,
        self_percentage=node.self_percentage,
    )


def rank(tree: SpanTree) -> list[SpanNode]:
    """All nodes, slowest self duration first. Ties keep tree (pre-order) order."""
    return sorted(tree.walk(), key=lambda n: n.self_duration_ms or 0, reverse=True)


def paginate(
    tree: SpanTree, page: int, size: int, *, try_id: str | None = None, trace_id: str | None = None,
) -> MethodPage:
    """Slice [page*size, min((page+1)*size, total)) of the ranking. Page and size are assumed valid."""
    ranked = rank(tree)
    total = len(ranked)
    start = page * size
    end = min(start + size, total)
    return MethodPage(
        try_id=try_id,
        trace_id=trace_id,
        total_duration_ms=tree.total_duration_ms,
        total_count=total,
        page=page,
        size=size,
        has_more=end < total,
        methods=tuple(_item(n) for n in ranked[start:end]) if start < total else (),
    )


class MethodListService:
    """Fetches a try's spans and serves pages of its method ranking.

    An absent trace yields an all-zero page, never an error.
    """

    __slots__ = ("store", "builder")

    def __init__(self, store: TraceStore, builder: SpanTreeBuilder | None = None) -> None:
        self.store = store
        self.builder = builder or SpanTreeBuilder()

    async def list(self, try_id: str, page: int = 0, size: int = DEFAULT_PAGE_SIZE) -> MethodPage:
        data = await self.store.fetch(try_id)
        if data is None or not data.spans:
            log.debug("no spans for method list", queried_try_id=try_id)
            return MethodPage(try_id=try_id, page=page, size=size)
        return paginate(self.builder.build(data.spans), page, size, try_id=try_id, trace_id=data.trace_id)
