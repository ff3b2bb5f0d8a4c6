"""Tests for the try registry and the result façade."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import httpx
import pytest

from tryit.analysis import IssueAnalyzer, IssueType, SpanTreeBuilder, TryStatus
from tryit.foundation.errors import ErrorCode, InvalidPaginationError, InvalidTryIdError
from tryit.io.storage import InMemoryTraceStore, TempoClient, TempoTraceStore, TraceData
from tryit.runtime.context import TraceHandle
from tryit.runtime.observability import SpanData, SpanKind
from tryit.runtime.retry import ConstantBackoff, PollPolicy
from tryit.service import TryRegistry, TryResultService, status_code_of, validate_pagination

SpanFactory = Callable[..., SpanData]


class SpyStore(InMemoryTraceStore):
    __slots__ = ("fetched",)

    def __init__(self) -> None:
        super().__init__()
        self.fetched: list[str] = []

    async def fetch(self, try_id: str) -> TraceData | None:
        self.fetched.append(try_id)
        return await super().fetch(try_id)


class ExplodingAnalyzer(IssueAnalyzer):
    def analyze(self, spans: Sequence[SpanData], total_ms: int | None = None) -> list:
        raise RuntimeError("rule crashed")


class ExplodingBuilder(SpanTreeBuilder):
    __slots__ = ()

    def build(self, spans: Sequence[SpanData], total_ms: int | None = None):
        raise RuntimeError("tree crashed")


@pytest.fixture
def try_id() -> str:
    return str(TraceHandle.new())


@pytest.fixture
def recorded(store: InMemoryTraceStore, make_span: SpanFactory, try_id: str) -> InMemoryTraceStore:
    """Server span 0-1000 calling a repository 100-700 and a service 700-800."""
    for span in (
        make_span("root", 0, 1000, name="http post /orders", kind=SpanKind.SERVER,
                  attributes={"http.method": "POST", "http.status_code": "201"}, try_id=try_id),
        make_span("repo", 100, 700, "root", name="OrderRepository.save", try_id=try_id),
        make_span("svc", 700, 800, "root", name="OrderService.notify", try_id=try_id),
    ):
        store.record(span)
    return store


# ═════════════════════════════════════════════════════════════════════════════
# Registry
# ═════════════════════════════════════════════════════════════════════════════


def test_registry_registers_pending_once() -> None:
    registry = TryRegistry()
    first = registry.register("t1")
    assert first.status is TryStatus.PENDING
    assert first.created_at is not None
    assert registry.register("t1") is first
    assert "t1" in registry
    assert registry.get("missing") is None


def test_registry_is_bounded() -> None:
    registry = TryRegistry(max_records=2)
    for key in ("a", "b", "c"):
        registry.register(key)
    assert len(registry) == 2
    assert "a" not in registry
    assert registry.remove("b") is True
    assert registry.remove("b") is False
    registry.clear()
    assert len(registry) == 0


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(("page", "size"), [(-1, 5), (0, 0), (0, 101), (0, -3)])
def test_validate_pagination_rejects(page: int, size: int) -> None:
    with pytest.raises(InvalidPaginationError) as exc_info:
        validate_pagination(page, size)
    assert exc_info.value.error.code == ErrorCode.INVALID_PAGINATION
    assert exc_info.value.status_code == 400


def test_validate_pagination_accepts_bounds() -> None:
    validate_pagination(0, 1)
    validate_pagination(10_000, 100)


@pytest.mark.asyncio
@pytest.mark.parametrize("view", ["summary", "trace", "issues", "methods"])
async def test_invalid_id_rejected_before_fetch(view: str) -> None:
    store = SpyStore()
    service = TryResultService(store)
    with pytest.raises(InvalidTryIdError):
        await getattr(service, view)("not-a-try-id")
    assert store.fetched == []


# ═════════════════════════════════════════════════════════════════════════════
# Views
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_unknown_try_is_pending(store: InMemoryTraceStore, try_id: str) -> None:
    registry = TryRegistry()
    registry.register(try_id)
    service = TryResultService(store, registry)

    record = await service.summary(try_id)
    assert record.status is TryStatus.PENDING
    assert record.created_at == registry.get(try_id).created_at
    assert (record.span_count, record.issue_count, record.total_duration_ms) == (0, 0, 0)

    trace = await service.trace(try_id)
    assert trace.status is TryStatus.PENDING
    assert trace.spans == ()

    issues = await service.issues(try_id)
    assert issues.status is TryStatus.PENDING
    assert issues.issue_count == 0

    page = await service.methods(try_id)
    assert page.total_count == 0


@pytest.mark.asyncio
async def test_never_indexed_backend_reports_pending(try_id: str) -> None:
    searches = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal searches
        searches += 1
        return httpx.Response(200, json={"traces": []})

    client = TempoClient("http://tempo:3200", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    store = TempoTraceStore(client, PollPolicy(max_attempts=3, backoff=ConstantBackoff(0.0), max_wait=1.0))
    service = TryResultService(store)

    record = await service.summary(try_id)
    assert record.status is TryStatus.PENDING
    assert record.span_count == 0
    assert record.trace_id is None
    assert searches == 3
    await service.close()


@pytest.mark.asyncio
async def test_summary_completed(recorded: InMemoryTraceStore, try_id: str) -> None:
    record = await TryResultService(recorded).summary(try_id.upper())
    assert record.try_id == try_id
    assert record.status is TryStatus.COMPLETED
    assert record.trace_id == "trace-1"
    assert record.status_code == 201
    assert record.total_duration_ms == 1000
    assert record.span_count == 3
    # root: outbound + generic; repo: database + generic
    assert record.issue_count == 4
    assert record.analyzed_at is not None


@pytest.mark.asyncio
async def test_trace_view(recorded: InMemoryTraceStore, try_id: str) -> None:
    view = await TryResultService(recorded).trace(try_id)
    assert view.status is TryStatus.COMPLETED
    assert view.span_count == 3
    (root,) = view.spans
    assert root.display_name == "http post /orders"
    assert [c.span_id for c in root.children] == ["repo", "svc"]
    assert root.self_duration_ms == 300


@pytest.mark.asyncio
async def test_issues_view(recorded: InMemoryTraceStore, try_id: str) -> None:
    view = await TryResultService(recorded).issues(try_id)
    assert view.issue_count == 4
    assert [i.type for i in view.issues if i.span_id == "repo"] == [
        IssueType.SLOW_DATABASE_CALL, IssueType.SLOW_SPAN_GENERIC,
    ]


@pytest.mark.asyncio
async def test_methods_view(recorded: InMemoryTraceStore, try_id: str) -> None:
    page = await TryResultService(recorded).methods(try_id, page=0, size=2)
    assert [m.span_id for m in page.methods] == ["repo", "root"]
    assert page.total_count == 3
    assert page.has_more is True


@pytest.mark.asyncio
async def test_analysis_failure_reports_failed(recorded: InMemoryTraceStore, try_id: str) -> None:
    service = TryResultService(recorded, builder=ExplodingBuilder(), analyzer=ExplodingAnalyzer())

    record = await service.summary(try_id)
    assert record.status is TryStatus.FAILED
    assert record.error_message == "rule crashed"
    assert record.span_count == 3

    assert (await service.trace(try_id)).status is TryStatus.FAILED
    assert (await service.issues(try_id)).status is TryStatus.FAILED
    assert (await service.methods(try_id)).methods == ()


# ═════════════════════════════════════════════════════════════════════════════
# Status code
# ═════════════════════════════════════════════════════════════════════════════


def test_status_code_defaults_to_200(make_span: SpanFactory) -> None:
    assert status_code_of([make_span("a", 0, 1)]) == 200
    assert status_code_of([make_span("a", 0, 1, kind=SpanKind.SERVER, attributes={"http.status_code": "x"})]) == 200


def test_status_code_from_earliest_server_span(make_span: SpanFactory) -> None:
    spans = [
        make_span("late", 10, 20, name="http get /b", attributes={"status": "404"}),
        make_span("early", 0, 20, kind=SpanKind.SERVER, attributes={"http.status_code": "503"}),
    ]
    assert status_code_of(spans) == 503
