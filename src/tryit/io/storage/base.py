"""Trace store contract shared by the in-process and external-backend strategies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tryit.runtime.observability import SpanData


@dataclass(frozen=True, slots=True)
class TraceData:
    """Spans of one try as currently visible to the store."""

    trace_id: str
    spans: tuple[SpanData, ...]

    def __len__(self) -> int:
        return len(self.spans)


@runtime_checkable
class TraceStore(Protocol):
    """record() a closed span; fetch() everything recorded for a try id, or None if absent.

    fetch() never raises for backend trouble: failures are logged and reported
    as absent so callers can answer "pending" instead of failing.
    """

    def record(self, span: SpanData) -> None: ...

    async def fetch(self, try_id: str) -> TraceData | None: ...

    async def close(self) -> None: ...
