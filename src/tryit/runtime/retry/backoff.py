"""Backoff strategies for polling an eventually-consistent backend.

- ExponentialBackoff: Exponential growth, capped, optional jitter
- LinearBackoff: Linear growth with cap
- ConstantBackoff: Fixed delay
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tryit.foundation.config import TempoSettings


@runtime_checkable
class Backoff(Protocol):
    """Delay before the next poll. Attempt numbers are 0-indexed (first wait = attempt 0)."""

    def delay(self, attempt: int) -> float: ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Delay = min(base * (multiplier ^ attempt), max_delay), scaled 0.5-1.5x when jitter is on.

    Attributes:
        base: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential growth factor
        jitter: Randomize delays so concurrent pollers spread out
    """

    base: float = 0.5
    max_delay: float = 2.0
    multiplier: float = 1.5
    jitter: bool = False

    def delay(self, attempt: int) -> float:
        d = min(self.base * (self.multiplier ** attempt), self.max_delay)
        return d * (0.5 + random.random()) if self.jitter else d


@dataclass(frozen=True, slots=True)
class LinearBackoff:
    """Delay = min(base + (increment * attempt), max_delay)."""

    base: float = 0.5
    increment: float = 0.5
    max_delay: float = 2.0

    def delay(self, attempt: int) -> float:
        return min(self.base + (self.increment * attempt), self.max_delay)


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Fixed delay between polls."""

    delay_seconds: float = 0.5

    def delay(self, attempt: int) -> float:
        return self.delay_seconds


def backoff_from_settings(settings: TempoSettings) -> Backoff:
    """Build the configured backoff for the external trace backend."""
    if settings.backoff == "constant":
        return ConstantBackoff(settings.poll_interval)
    if settings.backoff == "linear":
        return LinearBackoff(base=settings.poll_interval, increment=settings.backoff_increment,
                             max_delay=settings.max_delay)
    return ExponentialBackoff(base=settings.poll_interval, max_delay=settings.max_delay,
                              multiplier=settings.backoff_multiplier)
