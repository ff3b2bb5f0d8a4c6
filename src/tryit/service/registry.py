"""Registry of tries sampled by this process.

Holds the pending TryRecord created when a sampled unit of work begins, so
result views can report when the try was created. Bounded: the oldest
records are evicted first.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import UTC, datetime

from tryit.analysis.models import TryRecord, TryStatus
from tryit.runtime.observability.logging import get_logger

log = get_logger("tryit.registry")

DEFAULT_MAX_RECORDS = 10_000


class TryRegistry:
    """Thread-safe, bounded try id -> TryRecord map.

    Example:
        >>> registry = TryRegistry()
        >>> record = registry.register("7f3c...")
        >>> registry.get("7f3c...").status
        <TryStatus.PENDING: 'pending'>
    """

    __slots__ = ("_records", "_lock", "_max_records")

    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self._records: OrderedDict[str, TryRecord] = OrderedDict()
        self._lock = threading.Lock()
        self._max_records = max_records

    def register(self, try_id: str) -> TryRecord:
        """Record a new pending try. Registering an id twice keeps the first record."""
        with self._lock:
            if (existing := self._records.get(try_id)) is not None:
                return existing
            while len(self._records) >= self._max_records:
                self._records.popitem(last=False)
            record = self._records[try_id] = TryRecord(
                try_id=try_id, status=TryStatus.PENDING, created_at=datetime.now(UTC),
            )
        log.debug("try registered", registered_try_id=try_id)
        return record

    def get(self, try_id: str) -> TryRecord | None:
        with self._lock:
            return self._records.get(try_id)

    def remove(self, try_id: str) -> bool:
        with self._lock:
            return self._records.pop(try_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __contains__(self, try_id: object) -> bool:
        return try_id in self._records

    def __len__(self) -> int:
        return len(self._records)
