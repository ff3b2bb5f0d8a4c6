"""Context-carrying thread pool.

A plain ThreadPoolExecutor runs submitted work in whatever context the
worker thread happens to have, so the ambient try handle of the submitter
is lost (and loop.run_in_executor does not copy it either). ContextThreadPool
captures the context at submit time and runs the task inside a fresh copy
of that snapshot on the worker, which means:
    - the task sees the submitter's try handle and active span
    - nothing set by the task survives on the worker afterwards

Example:
    >>> with ContextThreadPool(max_workers=4) as pool:
    ...     future = pool.submit(load_order, order_id)
    ...     order = future.result()

    >>> async with ContextThreadPool(4) as pool:
    ...     order = await pool.run(load_order, order_id)
"""

from __future__ import annotations

import asyncio
import functools
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, ParamSpec, TypeVar

from tryit.runtime.context import capture

if TYPE_CHECKING:
    from types import TracebackType

T = TypeVar("T")
P = ParamSpec("P")

__all__ = ["ContextThreadPool", "run_in_thread", "DEFAULT_THREAD_WORKERS"]

_CPU_COUNT = os.cpu_count() or 1
DEFAULT_THREAD_WORKERS = min(32, _CPU_COUNT + 4)


@dataclass(slots=True)
class ContextThreadPool:
    """Thread pool whose tasks inherit the submitter's context."""

    max_workers: int = DEFAULT_THREAD_WORKERS
    thread_name_prefix: str = "tryit-"
    _executor: ThreadPoolExecutor | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                thread_name_prefix=self.thread_name_prefix)
        return self._executor

    def submit(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> Future[T]:
        """Submit work; the current context is captured now and restored on the worker."""
        return self.executor.submit(capture().run, func, *args, **kwargs)

    def map(self, func: Callable[[T], object], items: list[T], *, timeout: float | None = None) -> list[object]:
        """Map func over items, each call in the submitter's context."""
        return list(self.executor.map(capture().wrap(func), items, timeout=timeout))

    async def run(self, func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Run func on the pool and await its result."""
        loop = asyncio.get_running_loop()
        snapshot = capture()
        return await loop.run_in_executor(self.executor, functools.partial(snapshot.run, func, *args, **kwargs))

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        if self._executor:
            self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)
            self._executor = None

    def __enter__(self) -> ContextThreadPool:
        _ = self.executor
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        self.shutdown(wait=True, cancel_futures=exc_val is not None)

    async def __aenter__(self) -> ContextThreadPool:
        _ = self.executor
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                        exc_tb: TracebackType | None) -> None:
        self.shutdown(wait=True, cancel_futures=exc_val is not None)


async def run_in_thread(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a blocking function in the loop's default executor with the current context."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(capture().run, func, *args, **kwargs))
