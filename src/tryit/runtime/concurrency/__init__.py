"""Concurrency helpers that carry the try context across thread handoffs."""

from .pool import DEFAULT_THREAD_WORKERS, ContextThreadPool, run_in_thread

__all__ = ["ContextThreadPool", "run_in_thread", "DEFAULT_THREAD_WORKERS"]
