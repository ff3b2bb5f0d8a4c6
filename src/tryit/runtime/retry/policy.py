"""Bounded polling for data that becomes visible asynchronously.

The external trace backend indexes spans some time after they were exported,
so a lookup that finds nothing is retried. Every poll sequence is bounded
twice: by a maximum number of attempts and by a hard wall-clock deadline,
after which the result is "absent" (None) rather than an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Annotated, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .backoff import Backoff, ExponentialBackoff, backoff_from_settings

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from tryit.foundation.config import TempoSettings

T = TypeVar("T")

logger = logging.getLogger("tryit.retry")


class PollPolicy(BaseModel):
    """How long and how often to poll for a not-yet-visible result.

    Attributes:
        max_attempts: Lookups issued at most (first one included)
        backoff: Delay strategy between lookups
        max_wait: Hard deadline in seconds for the whole sequence
        on_retry: Optional callback(attempt, delay) before each wait

    Example:
        >>> policy = PollPolicy(max_attempts=5, backoff=ConstantBackoff(0.2), max_wait=2.0)
        >>> trace_id = await poll_until(lambda: client.search(query), policy, "tempo.search")
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        validate_default=True,
        extra="forbid",
        json_schema_extra={"title": "Poll Policy", "examples": [{"max_attempts": 10, "max_wait": 8.0}]},
    )

    max_attempts: Annotated[int, Field(ge=1, le=100)] = 10
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    max_wait: Annotated[float, Field(gt=0)] = 8.0
    on_retry: Callable[[int, float], None] | None = Field(default=None, exclude=True, repr=False)

    @computed_field
    @property
    def is_single_shot(self) -> bool:
        return self.max_attempts == 1

    def get_delay(self, attempt: int) -> float:
        return self.backoff.delay(attempt)

    @classmethod
    def from_settings(cls, settings: TempoSettings) -> PollPolicy:
        return cls(max_attempts=settings.max_poll_attempts, backoff=backoff_from_settings(settings),
                   max_wait=settings.max_wait)


async def poll_until(
    operation: Callable[[], Awaitable[T | None]],
    policy: PollPolicy,
    label: str,
    *,
    deadline: float | None = None,
) -> T | None:
    """Call operation until it returns a non-None value, attempts run out, or the deadline passes.

    deadline is an absolute event-loop time; it defaults to now + policy.max_wait.
    Callers pass their own when follow-up work must fit in the same budget.

    Exceptions raised by operation propagate; callers that want to keep
    polling through transient failures should catch inside operation.
    """
    loop = asyncio.get_running_loop()
    if deadline is None:
        deadline = loop.time() + policy.max_wait
    try:
        async with asyncio.timeout_at(deadline):
            for attempt in range(policy.max_attempts):
                if (result := await operation()) is not None:
                    if attempt:
                        logger.debug(f"[{label}] Found on attempt {attempt + 1}/{policy.max_attempts}")
                    return result
                if attempt == policy.max_attempts - 1:
                    break
                delay = min(policy.get_delay(attempt), max(0.0, deadline - loop.time()))
                logger.debug(f"[{label}] Not found, poll {attempt + 2}/{policy.max_attempts} in {delay:.2f}s")
                if policy.on_retry:
                    policy.on_retry(attempt, delay)
                await asyncio.sleep(delay)
    except TimeoutError:
        logger.info(f"[{label}] Gave up after {policy.max_wait:.1f}s deadline")
        return None
    logger.info(f"[{label}] Not found after {policy.max_attempts} attempts")
    return None
