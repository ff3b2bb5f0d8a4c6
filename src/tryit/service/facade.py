"""Result façade: the four read views of a try.

Each view validates the try id before touching the store, fetches the try's
spans once and derives only what it needs:

    summary  -> status, counts, status code (issues counted, no tree)
    trace    -> SpanNode forest (no issue analysis)
    issues   -> findings (no tree)
    methods  -> one page of the self-duration ranking

Views are idempotent reads. A trace the store cannot return (not indexed yet,
backend down) is reported as pending with zeros; a failure while analysing
fetched spans is reported as failed. Only invalid input raises.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from tryit.analysis import (
    DEFAULT_PAGE_SIZE,
    IssueAnalyzer,
    IssuesView,
    MethodListService,
    MethodPage,
    SpanTreeBuilder,
    TraceView,
    TryRecord,
    TryStatus,
    total_duration_ms,
)
from tryit.foundation.errors import InvalidPaginationError, classify_exception
from tryit.runtime.context import TraceHandle
from tryit.runtime.observability import SpanKind
from tryit.runtime.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tryit.io.storage import TraceData, TraceStore
    from tryit.runtime.observability import SpanData

    from .registry import TryRegistry

log = get_logger("tryit.service")

DEFAULT_STATUS_CODE = 200
MAX_PAGE_SIZE = 100
_STATUS_ATTRIBUTES = ("http.status_code", "status")


def validate_pagination(page: int, size: int, max_size: int = MAX_PAGE_SIZE) -> None:
    """Reject out-of-range paging instead of clamping it."""
    if page < 0:
        raise InvalidPaginationError("page must be >= 0", details=str(page))
    if not 1 <= size <= max_size:
        raise InvalidPaginationError(f"size must be between 1 and {max_size}", details=str(size))


def status_code_of(spans: Sequence[SpanData]) -> int:
    """HTTP status of the earliest server or http span that reports one, else 200."""
    candidates = sorted(
        (s for s in spans if s.kind is SpanKind.SERVER or s.name.lower().startswith("http")),
        key=lambda s: (s.start_nanos is None, s.start_nanos or 0, s.span_id),
    )
    for span in candidates:
        for key in _STATUS_ATTRIBUTES:
            if (raw := span.attributes.get(key)) is None:
                continue
            try:
                return int(raw)
            except ValueError:
                continue
    return DEFAULT_STATUS_CODE


class TryResultService:
    """Serves summary, trace, issues and method views from one TraceStore.

    Args:
        store: Where spans are fetched from
        registry: Tries sampled by this process, for created_at
        builder: Tree builder
        analyzer: Issue heuristics

    Example:
        >>> service = TryResultService(InMemoryTraceStore(), TryRegistry())
        >>> record = await service.summary("0b8e5a34-3f8e-4f0f-9d0c-6a3f4c2b1e11")
        >>> record.status
        <TryStatus.PENDING: 'pending'>
    """

    __slots__ = ("store", "registry", "builder", "analyzer", "method_list")

    def __init__(
        self,
        store: TraceStore,
        registry: TryRegistry | None = None,
        builder: SpanTreeBuilder | None = None,
        analyzer: IssueAnalyzer | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.builder = builder or SpanTreeBuilder()
        self.analyzer = analyzer or IssueAnalyzer()
        self.method_list = MethodListService(store, self.builder)

    @staticmethod
    def normalize(try_id: str) -> str:
        """Canonical form of a try id. Raises InvalidTryIdError before any backend call."""
        return str(TraceHandle.parse(try_id))

    def _created_at(self, try_id: str) -> datetime | None:
        if self.registry is None or (record := self.registry.get(try_id)) is None:
            return None
        return record.created_at

    async def _fetch(self, try_id: str) -> TraceData | None:
        data = await self.store.fetch(try_id)
        return data if data is not None and data.spans else None

    # ─────────────────────────────────────────────────────────────────────
    # Views
    # ─────────────────────────────────────────────────────────────────────

    async def summary(self, try_id: str) -> TryRecord:
        key = self.normalize(try_id)
        created_at = self._created_at(key)
        if (data := await self._fetch(key)) is None:
            return TryRecord(try_id=key, status=TryStatus.PENDING, created_at=created_at)
        try:
            total = total_duration_ms(data.spans)
            issues = self.analyzer.analyze(data.spans, total)
            status_code = status_code_of(data.spans)
        except Exception as e:  # noqa: BLE001 - analysis failure is reported, not raised
            log.error("summary analysis failed", queried_try_id=key,
                      error_code=classify_exception(e).value, error=str(e))
            return TryRecord(try_id=key, trace_id=data.trace_id, status=TryStatus.FAILED,
                             created_at=created_at, span_count=len(data), error_message=str(e))
        return TryRecord(
            try_id=key,
            trace_id=data.trace_id,
            status=TryStatus.COMPLETED,
            status_code=status_code,
            created_at=created_at,
            analyzed_at=datetime.now(UTC),
            total_duration_ms=total,
            span_count=len(data),
            issue_count=len(issues),
        )

    async def trace(self, try_id: str) -> TraceView:
        key = self.normalize(try_id)
        if (data := await self._fetch(key)) is None:
            return TraceView(try_id=key)
        try:
            tree = self.builder.build(data.spans)
        except Exception as e:  # noqa: BLE001 - analysis failure is reported, not raised
            log.error("trace build failed", queried_try_id=key,
                      error_code=classify_exception(e).value, error=str(e))
            return TraceView(try_id=key, trace_id=data.trace_id, status=TryStatus.FAILED, span_count=len(data))
        return TraceView(
            try_id=key, trace_id=data.trace_id, status=TryStatus.COMPLETED,
            total_duration_ms=tree.total_duration_ms, span_count=tree.span_count, spans=tree.roots,
        )

    async def issues(self, try_id: str) -> IssuesView:
        key = self.normalize(try_id)
        if (data := await self._fetch(key)) is None:
            return IssuesView(try_id=key)
        try:
            issues = self.analyzer.analyze(data.spans)
        except Exception as e:  # noqa: BLE001 - analysis failure is reported, not raised
            log.error("issue analysis failed", queried_try_id=key,
                      error_code=classify_exception(e).value, error=str(e))
            return IssuesView(try_id=key, trace_id=data.trace_id, status=TryStatus.FAILED)
        return IssuesView(try_id=key, trace_id=data.trace_id, status=TryStatus.COMPLETED, issues=tuple(issues))

    async def methods(self, try_id: str, page: int = 0, size: int = DEFAULT_PAGE_SIZE) -> MethodPage:
        """One page of the ranking. page and size must already be validated (see validate_pagination)."""
        key = self.normalize(try_id)
        try:
            return await self.method_list.list(key, page, size)
        except Exception as e:  # noqa: BLE001 - analysis failure is reported, not raised
            log.error("method ranking failed", queried_try_id=key,
                      error_code=classify_exception(e).value, error=str(e))
            return MethodPage(try_id=key, page=page, size=size)

    async def close(self) -> None:
        await self.store.close()
