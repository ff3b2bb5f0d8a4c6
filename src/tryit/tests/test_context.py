"""Tests for ambient try-context propagation and thread-pool handoff."""

from __future__ import annotations

import asyncio
import threading
import uuid

import pytest

from tryit.foundation.errors import ErrorCode, InvalidTryIdError
from tryit.runtime.concurrency import ContextThreadPool, run_in_thread
from tryit.runtime.context import TraceHandle, TryContext, bind, capture


# ═════════════════════════════════════════════════════════════════════════════
# TraceHandle
# ═════════════════════════════════════════════════════════════════════════════


def test_handle_renders_as_uuid() -> None:
    handle = TraceHandle.new()
    assert uuid.UUID(str(handle)) == handle.value
    assert TraceHandle.parse(str(handle)) == handle


def test_handle_parse_accepts_surrounding_whitespace_and_uppercase() -> None:
    raw = "0B8E5A34-3F8E-4F0F-9D0C-6A3F4C2B1E11"
    assert str(TraceHandle.parse(f"  {raw} ")) == raw.lower()


@pytest.mark.parametrize("raw", ["", "not-a-uuid", "1234", None])
def test_handle_parse_rejects_malformed(raw: str | None) -> None:
    with pytest.raises(InvalidTryIdError) as exc_info:
        TraceHandle.parse(raw)
    assert exc_info.value.error.code == ErrorCode.INVALID_TRY_ID
    assert exc_info.value.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Scopes
# ═════════════════════════════════════════════════════════════════════════════


def test_scope_restores_previous_value() -> None:
    outer, inner = TraceHandle.new(), TraceHandle.new()
    assert TryContext.get() is None
    with TryContext.set(outer):
        assert TryContext.get() == outer
        with TryContext.set(inner):
            assert TryContext.current_id() == str(inner)
        assert TryContext.get() == outer
    assert TryContext.get() is None
    assert not TryContext.has()


def test_setting_none_clears_for_the_scope_only() -> None:
    handle = TraceHandle.new()
    with TryContext.set(handle):
        with TryContext.set(None):
            assert TryContext.get() is None
        assert TryContext.get() == handle


def test_scope_close_is_idempotent() -> None:
    handle = TraceHandle.new()
    scope = TryContext.set(handle)
    scope.close()
    scope.close()
    assert TryContext.get() is None


def test_outbound_slot_claimed_once_per_unit_of_work() -> None:
    assert TryContext.claim_outbound() is False
    with TryContext.set(TraceHandle.new()):
        assert TryContext.claim_outbound() is True
        assert TryContext.claim_outbound() is False
    with TryContext.set(TraceHandle.new()):
        assert TryContext.claim_outbound() is True


# ═════════════════════════════════════════════════════════════════════════════
# Handoffs
# ═════════════════════════════════════════════════════════════════════════════


def test_captured_context_runs_with_submitter_handle() -> None:
    handle = TraceHandle.new()
    with TryContext.set(handle):
        snapshot = capture()
        bound = bind(TryContext.get)
    assert TryContext.get() is None
    assert snapshot.handle == handle
    assert snapshot.run(TryContext.get) == handle
    assert bound() == handle


def test_plain_thread_does_not_see_handle() -> None:
    seen: list[TraceHandle | None] = []
    with TryContext.set(TraceHandle.new()):
        t = threading.Thread(target=lambda: seen.append(TryContext.get()))
        t.start()
        t.join()
    assert seen == [None]


def test_pool_task_sees_submitter_handle() -> None:
    handle = TraceHandle.new()
    with ContextThreadPool(max_workers=1) as pool:
        with TryContext.set(handle):
            future = pool.submit(TryContext.get)
        assert future.result(timeout=5) == handle


def test_pool_does_not_leak_handle_to_next_task() -> None:
    """Sampled and unsampled tasks sharing one worker never observe each other's handle."""
    handle = TraceHandle.new()

    def leaky() -> TraceHandle | None:
        # Installs a scope and never closes it
        TryContext.set(TraceHandle.new())
        return TryContext.get()

    with ContextThreadPool(max_workers=1) as pool:
        with TryContext.set(handle):
            first = pool.submit(TryContext.get).result(timeout=5)
        leaked = pool.submit(leaky).result(timeout=5)
        after = pool.submit(TryContext.get).result(timeout=5)

    assert first == handle
    assert leaked is not None and leaked != handle
    assert after is None


def test_pool_map_carries_handle() -> None:
    handle = TraceHandle.new()
    with ContextThreadPool(max_workers=2) as pool, TryContext.set(handle):
        results = pool.map(lambda _: TryContext.get(), [1, 2, 3])
    assert results == [handle, handle, handle]


def test_pool_rejects_zero_workers() -> None:
    with pytest.raises(ValueError):
        ContextThreadPool(max_workers=0)


@pytest.mark.asyncio
async def test_async_pool_run_carries_handle() -> None:
    handle = TraceHandle.new()
    async with ContextThreadPool(max_workers=1) as pool:
        with TryContext.set(handle):
            seen = await pool.run(TryContext.get)
    assert seen == handle


@pytest.mark.asyncio
async def test_run_in_thread_carries_handle() -> None:
    handle = TraceHandle.new()
    with TryContext.set(handle):
        assert await run_in_thread(TryContext.get) == handle


@pytest.mark.asyncio
async def test_concurrent_tasks_are_isolated() -> None:
    a, b = TraceHandle.new(), TraceHandle.new()

    async def unit(handle: TraceHandle | None) -> list[TraceHandle | None]:
        with TryContext.set(handle):
            seen = [TryContext.get()]
            await asyncio.sleep(0.01)
            seen.append(TryContext.get())
            return seen

    results = await asyncio.gather(unit(a), unit(None), unit(b))
    assert results == [[a, a], [None, None], [b, b]]
