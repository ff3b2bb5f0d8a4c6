"""Selective sampler: the once-per-unit-of-work decision to record spans.

Sampling is off by default. A unit of work is recorded only when it carries
the recognized marker (X-Try: on, value compared case-insensitively). The
decision installs the handle for the whole unit of work; an unsampled unit
of work runs with the context explicitly cleared, so it produces no spans
even on a worker that previously ran sampled work.

Example:
    >>> sampler = Sampler.from_settings(get_settings())
    >>> with sampler.unit_of_work(headers.get("X-Try")) as handle:
    ...     handle_request()
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tryit.runtime.context import TraceHandle, TryContext
from tryit.runtime.observability.logging import get_logger

if TYPE_CHECKING:
    from tryit.foundation.config import TryitSettings
    from tryit.service.registry import TryRegistry

log = get_logger("tryit.sampling")


@dataclass(slots=True)
class Sampler:
    """Marker-driven sampling decision.

    Attributes:
        header_name: Marker field name
        enabled_value: Marker value that turns sampling on
        try_id_header: Field carrying an existing try id (responses, frames)
        registry: Where new tries are registered, if anywhere
    """

    header_name: str = "X-Try"
    enabled_value: str = "on"
    try_id_header: str = "X-Try-Id"
    registry: TryRegistry | None = None

    @classmethod
    def from_settings(cls, settings: TryitSettings, registry: TryRegistry | None = None) -> Sampler:
        s = settings.sampling
        return cls(header_name=s.header_name, enabled_value=s.enabled_value,
                   try_id_header=s.try_id_header, registry=registry)

    def is_marked(self, marker: str | None) -> bool:
        return marker is not None and marker.strip().lower() == self.enabled_value.lower()

    def decide(self, marker: str | None, carried_id: str | None = None) -> TraceHandle | None:
        """Handle for a marked unit of work, else None.

        A marked unit of work adopts a carried id when one is present; a
        malformed carried id raises InvalidTryIdError instead of sampling.
        """
        if not self.is_marked(marker):
            return None
        if carried_id is not None and carried_id.strip():
            return TraceHandle.parse(carried_id)
        return TraceHandle.new()

    def register(self, handle: TraceHandle) -> None:
        if self.registry is not None:
            self.registry.register(str(handle))
        log.debug("try sampled", sampled_try_id=str(handle))

    @contextmanager
    def unit_of_work(self, marker: str | None, carried_id: str | None = None) -> Iterator[TraceHandle | None]:
        """Decide, install the handle (or an explicit empty context) and release it on exit."""
        handle = self.decide(marker, carried_id)
        if handle is not None:
            self.register(handle)
        with TryContext.set(handle):
            yield handle
