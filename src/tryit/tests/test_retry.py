"""Tests for bounded polling and backoff strategies."""

from __future__ import annotations

import time

import pytest

from tryit.foundation.config import TempoSettings
from tryit.runtime.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    LinearBackoff,
    PollPolicy,
    backoff_from_settings,
    poll_until,
)


class Countdown:
    """Returns None until the given attempt, then a value."""

    def __init__(self, ready_on: int | None) -> None:
        self.ready_on = ready_on
        self.calls = 0

    async def __call__(self) -> str | None:
        self.calls += 1
        return "trace-1" if self.ready_on is not None and self.calls >= self.ready_on else None


@pytest.mark.asyncio
async def test_returns_first_result() -> None:
    op = Countdown(ready_on=3)
    retries: list[int] = []
    policy = PollPolicy(max_attempts=5, backoff=ConstantBackoff(0.0), on_retry=lambda a, _: retries.append(a))
    assert await poll_until(op, policy, "test") == "trace-1"
    assert op.calls == 3
    assert retries == [0, 1]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    op = Countdown(ready_on=None)
    assert await poll_until(op, PollPolicy(max_attempts=4, backoff=ConstantBackoff(0.0)), "test") is None
    assert op.calls == 4


@pytest.mark.asyncio
async def test_deadline_bounds_the_sequence() -> None:
    op = Countdown(ready_on=None)
    policy = PollPolicy(max_attempts=100, backoff=ConstantBackoff(10.0), max_wait=0.2)
    started = time.monotonic()
    assert await poll_until(op, policy, "test") is None
    assert time.monotonic() - started < 2.0
    assert op.calls < 100


@pytest.mark.asyncio
async def test_operation_errors_propagate() -> None:
    async def boom() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await poll_until(boom, PollPolicy(backoff=ConstantBackoff(0.0)), "test")


def test_policy_validation() -> None:
    assert PollPolicy(max_attempts=1).is_single_shot
    with pytest.raises(ValueError):
        PollPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        PollPolicy(max_wait=0)


def test_exponential_backoff_is_capped() -> None:
    backoff = ExponentialBackoff(base=0.5, max_delay=2.0, multiplier=2.0)
    assert [backoff.delay(a) for a in range(4)] == [0.5, 1.0, 2.0, 2.0]


def test_exponential_jitter_stays_in_band() -> None:
    backoff = ExponentialBackoff(base=1.0, max_delay=1.0, jitter=True)
    for _ in range(20):
        assert 0.5 <= backoff.delay(3) <= 1.5


def test_linear_and_constant_backoff() -> None:
    assert [LinearBackoff(base=0.1, increment=0.2, max_delay=0.4).delay(a) for a in range(3)] == pytest.approx(
        [0.1, 0.3, 0.4])
    assert ConstantBackoff(0.25).delay(9) == 0.25


def test_policy_from_settings() -> None:
    settings = TempoSettings(max_poll_attempts=3, backoff="constant", poll_interval=0.1, max_wait=1.0)
    policy = PollPolicy.from_settings(settings)
    assert policy.max_attempts == 3
    assert policy.max_wait == 1.0
    assert isinstance(policy.backoff, ConstantBackoff)
    assert isinstance(backoff_from_settings(TempoSettings()), ExponentialBackoff)


def test_linear_backoff_from_settings() -> None:
    settings = TempoSettings(backoff="linear", poll_interval=0.2, backoff_increment=0.3, max_delay=0.6)
    backoff = backoff_from_settings(settings)
    assert isinstance(backoff, LinearBackoff)
    assert [backoff.delay(a) for a in range(3)] == pytest.approx([0.2, 0.5, 0.6])
