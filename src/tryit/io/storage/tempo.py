"""External-backend trace store (Tempo-compatible HTTP query API).

Spans reach the backend out-of-band (OTLP export), and the backend indexes
them asynchronously. fetch() therefore searches by try id and polls until a
trace shows up. The search polls and the trace download share one hard
deadline (the poll policy's max_wait).

    GET {base_url}/api/search?q={ span.try_id = "<try id>" }   -> {"traces": [{"traceID": ...}]}
    GET {base_url}/api/traces/{traceID}                        -> {"batches": [...]}

Every backend or parse failure is logged and reported as absent.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx
import orjson

from tryit.foundation.errors import classify_exception
from tryit.runtime.observability import TRY_ID_ATTRIBUTE
from tryit.runtime.observability.logging import get_logger
from tryit.runtime.retry import PollPolicy, poll_until

from .wire import SearchResponse, WireTrace, convert_trace

if TYPE_CHECKING:
    from tryit.foundation.config import TempoSettings
    from tryit.runtime.observability import SpanData

    from .base import TraceData

log = get_logger("tryit.store.tempo")


def build_query(try_id: str) -> str:
    """Backend filter expression selecting spans of one try."""
    return f'{{ span.{TRY_ID_ATTRIBUTE} = "{try_id}" }}'


class TempoClient:
    """Thin async client for the search and trace-by-id endpoints.

    Raises httpx errors and pydantic validation errors; TempoTraceStore
    decides what to do with them.
    """

    __slots__ = ("base_url", "_timeout", "_client", "_owned")

    def __init__(
        self,
        base_url: str,
        *,
        connect_timeout: float = 5.0,
        query_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(query_timeout, connect=connect_timeout)
        self._client = client
        self._owned = client is None

    @classmethod
    def from_settings(cls, settings: TempoSettings) -> TempoClient:
        return cls(settings.base_url, connect_timeout=settings.connect_timeout, query_timeout=settings.query_timeout)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers={"Accept": "application/json"})
        return self._client

    async def search(self, query: str) -> list[str]:
        """Trace ids matching query, best match first. Empty when nothing is indexed yet."""
        url = f"{self.base_url}/api/search?q={quote(query, safe='')}"
        response = await self._get_client().get(url)
        response.raise_for_status()
        parsed = SearchResponse.model_validate(orjson.loads(response.content))
        return [hit.trace_id for hit in parsed.traces or () if hit.trace_id]

    async def get_trace(self, trace_id: str) -> WireTrace | None:
        """Full trace, or None if the backend does not know the id."""
        response = await self._get_client().get(f"{self.base_url}/api/traces/{quote(trace_id, safe='')}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        return WireTrace.model_validate(orjson.loads(response.content))

    async def aclose(self) -> None:
        if self._client is not None and self._owned:
            await self._client.aclose()
            self._client = None


class TempoTraceStore:
    """Query-and-poll store over a Tempo-compatible backend.

    Concurrent fetches for different try ids share the HTTP client's
    connection pool and otherwise run independently.
    """

    __slots__ = ("client", "policy")

    def __init__(self, client: TempoClient, policy: PollPolicy | None = None) -> None:
        self.client = client
        self.policy = policy or PollPolicy()

    @classmethod
    def from_settings(cls, settings: TempoSettings) -> TempoTraceStore:
        return cls(TempoClient.from_settings(settings), PollPolicy.from_settings(settings))

    def record(self, span: SpanData) -> None:
        """No-op: spans reach the backend through the OTLP exporter."""

    async def _search_once(self, query: str) -> str | None:
        try:
            ids = await self.client.search(query)
        except Exception as e:  # noqa: BLE001 - transient backend trouble keeps the poll going
            log.warning("trace search failed", error_code=classify_exception(e).value, error=str(e))
            return None
        return ids[0] if ids else None

    async def fetch(self, try_id: str) -> TraceData | None:
        """Search, then load the trace, all within one policy.max_wait budget."""
        query = build_query(try_id)
        deadline = asyncio.get_running_loop().time() + self.policy.max_wait
        try:
            trace_id = await poll_until(lambda: self._search_once(query), self.policy, "tempo.search",
                                        deadline=deadline)
            if trace_id is None:
                log.debug("trace not indexed yet", queried_try_id=try_id)
                return None
            async with asyncio.timeout_at(deadline):
                wire = await self.client.get_trace(trace_id)
            if wire is None:
                log.warning("trace id found but trace missing", trace_id=trace_id)
                return None
            data = convert_trace(wire, trace_id, try_id)
        except TimeoutError:
            log.warning("trace fetch deadline passed", queried_try_id=try_id, max_wait=self.policy.max_wait)
            return None
        except Exception as e:  # noqa: BLE001 - backend errors degrade to absent
            log.error("trace fetch failed", queried_try_id=try_id,
                      error_code=classify_exception(e).value, error=str(e))
            return None
        log.debug("trace fetched", trace_id=trace_id, span_count=len(data))
        return data

    async def close(self) -> None:
        await self.client.aclose()
