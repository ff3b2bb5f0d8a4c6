"""Ambient try-id propagation.

Carries the TraceHandle of a sampled unit of work through:
- the synchronous call stack (ContextVar lookup, no explicit passing)
- async continuations (asyncio tasks copy the context at creation)
- thread-pool handoffs (capture() at submit time, run() on the worker)

Storage is a ContextVar, so concurrent requests on other threads or tasks
never observe each other's handle.

Example:
    >>> handle = TraceHandle.new()
    >>> with TryContext.set(handle):
    ...     assert TryContext.get() == handle
    ...     snapshot = capture()
    >>> TryContext.get() is None
    True
    >>> snapshot.run(TryContext.get) == handle
    True
"""

from __future__ import annotations

import contextvars
import threading
import uuid
from dataclasses import dataclass, field
from functools import wraps
from typing import TYPE_CHECKING, Callable, ParamSpec, TypeVar

from tryit.foundation.errors import InvalidTryIdError

if TYPE_CHECKING:
    from types import TracebackType

P = ParamSpec("P")
T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class TraceHandle:
    """Correlation identifier of one sampled unit of work (128-bit, UUID-rendered)."""

    value: uuid.UUID

    @classmethod
    def new(cls) -> TraceHandle:
        return cls(uuid.uuid4())

    @classmethod
    def parse(cls, raw: str | None) -> TraceHandle:
        """Parse a string-rendered id, raising InvalidTryIdError if malformed."""
        if raw is None:
            raise InvalidTryIdError(raw)
        try:
            return cls(uuid.UUID(raw.strip()))
        except (ValueError, AttributeError, TypeError) as e:
            raise InvalidTryIdError(raw) from e

    def __str__(self) -> str:
        return str(self.value)


@dataclass(slots=True)
class _TryState:
    """Per-unit-of-work state. One instance per installed scope."""

    handle: TraceHandle
    _outbound_claimed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim_outbound(self) -> bool:
        """True exactly once: the first outbound message of this unit of work."""
        with self._lock:
            if self._outbound_claimed:
                return False
            self._outbound_claimed = True
            return True


_state: contextvars.ContextVar[_TryState | None] = contextvars.ContextVar("tryit_state", default=None)


class Scope:
    """Installed try context. Closing restores whatever was ambient before."""

    __slots__ = ("_token", "_previous", "_closed")

    def __init__(self, token: contextvars.Token[_TryState | None], previous: _TryState | None) -> None:
        self._token, self._previous, self._closed = token, previous, False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            _state.reset(self._token)
        except ValueError:
            # Token was created in another Context (e.g. closed from a callback)
            _state.set(self._previous)

    def __enter__(self) -> Scope:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        self.close()


class TryContext:
    """Static accessors for the ambient try handle."""

    __slots__ = ()

    @staticmethod
    def set(handle: TraceHandle | None) -> Scope:
        """Install handle (None clears) and return the scope that restores the prior value."""
        previous = _state.get()
        token = _state.set(_TryState(handle) if handle is not None else None)
        return Scope(token, previous)

    @staticmethod
    def get() -> TraceHandle | None:
        return state.handle if (state := _state.get()) else None

    @staticmethod
    def has() -> bool:
        return _state.get() is not None

    @staticmethod
    def current_id() -> str | None:
        """String-rendered ambient try id, or None."""
        return str(state.handle) if (state := _state.get()) else None

    @staticmethod
    def claim_outbound() -> bool:
        """Claim the single outbound-message slot of the current unit of work."""
        return state.claim_outbound() if (state := _state.get()) else False


# ─────────────────────────────────────────────────────────────────────────────
# Explicit capture for task submission
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CapturedContext:
    """Snapshot of the ambient context taken at submission time.

    Each run() executes inside a fresh copy of the snapshot, so the worker's
    own context is untouched once the task completes and nothing leaks to
    the next task scheduled on that worker.
    """

    snapshot: contextvars.Context

    @property
    def handle(self) -> TraceHandle | None:
        state = self.snapshot.get(_state)
        return state.handle if state else None

    def run(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        return self.snapshot.copy().run(func, *args, **kwargs)

    def wrap(self, func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def bound(*args: P.args, **kwargs: P.kwargs) -> T:
            return self.run(func, *args, **kwargs)
        return bound


def capture() -> CapturedContext:
    """Capture the current context for later execution elsewhere."""
    return CapturedContext(contextvars.copy_context())


def bind(func: Callable[P, T]) -> Callable[P, T]:
    """Bind func to the context ambient right now (shorthand for capture().wrap)."""
    return capture().wrap(func)
