"""In-process trace store.

Spans are partitioned by try id. Each partition has its own lock and a
bounded buffer, so recording into one trace never waits on another; the
store-wide lock is only taken when a partition is created or evicted.
Everything is lost on restart.
"""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from typing import TYPE_CHECKING

from tryit.runtime.observability.logging import get_logger

from .base import TraceData

if TYPE_CHECKING:
    from tryit.runtime.observability import SpanData

log = get_logger("tryit.store.memory")

DEFAULT_MAX_SPANS = 10_000
DEFAULT_MAX_TRACES = 1_000


class _Partition:
    """Spans of one try. Oldest spans are dropped once the buffer is full."""

    __slots__ = ("trace_id", "spans", "dropped", "lock")

    def __init__(self, trace_id: str, max_spans: int) -> None:
        self.trace_id = trace_id
        self.spans: deque[SpanData] = deque(maxlen=max_spans)
        self.dropped = 0
        self.lock = threading.Lock()

    def append(self, span: SpanData) -> bool:
        """Append; True if an older span had to be dropped."""
        with self.lock:
            full = len(self.spans) == self.spans.maxlen
            self.spans.append(span)
            if full:
                self.dropped += 1
            return full

    def snapshot(self) -> TraceData:
        with self.lock:
            return TraceData(self.trace_id, tuple(self.spans))


class InMemoryTraceStore:
    """Thread-safe in-process store keyed by try id.

    Args:
        max_spans_per_trace: Per-trace buffer bound
        max_traces: Partitions kept; on overflow the earliest-created one is evicted
            (first in, first out; reads do not refresh a partition)

    Example:
        >>> store = InMemoryTraceStore()
        >>> store.record(span)
        >>> data = await store.fetch(span.try_id)
    """

    __slots__ = ("_partitions", "_lock", "_max_spans", "_max_traces")

    def __init__(self, max_spans_per_trace: int = DEFAULT_MAX_SPANS, max_traces: int = DEFAULT_MAX_TRACES) -> None:
        if max_spans_per_trace < 1 or max_traces < 1:
            raise ValueError("max_spans_per_trace and max_traces must be >= 1")
        self._partitions: OrderedDict[str, _Partition] = OrderedDict()
        self._lock = threading.Lock()
        self._max_spans = max_spans_per_trace
        self._max_traces = max_traces

    def _partition(self, try_id: str, trace_id: str) -> _Partition:
        if (part := self._partitions.get(try_id)) is not None:
            return part
        with self._lock:
            if (part := self._partitions.get(try_id)) is None:
                while len(self._partitions) >= self._max_traces:
                    evicted, _ = self._partitions.popitem(last=False)
                    log.debug("evicted oldest trace", evicted_try_id=evicted)
                part = self._partitions[try_id] = _Partition(trace_id, self._max_spans)
            return part

    def record(self, span: SpanData) -> None:
        try_id = span.try_id or span.attributes.get("try_id")
        if not try_id:
            log.debug("span without try id skipped", span=span.name)
            return
        if self._partition(try_id, span.trace_id).append(span):
            log.warning("trace span buffer full, oldest span dropped", trace_try_id=try_id, limit=self._max_spans)

    def get(self, try_id: str) -> TraceData | None:
        """Synchronous read; None if nothing was recorded for try_id."""
        if (part := self._partitions.get(try_id)) is None:
            return None
        data = part.snapshot()
        return data if data.spans else None

    async def fetch(self, try_id: str) -> TraceData | None:
        return self.get(try_id)

    def has_trace(self, try_id: str) -> bool:
        return try_id in self._partitions

    def clear(self, try_id: str | None = None) -> None:
        with self._lock:
            if try_id is None:
                self._partitions.clear()
            else:
                self._partitions.pop(try_id, None)

    async def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._partitions)
