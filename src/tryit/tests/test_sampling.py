"""Tests for the selective sampler."""

from __future__ import annotations

import pytest

from tryit.foundation.config import TryitSettings
from tryit.foundation.errors import InvalidTryIdError
from tryit.runtime.context import TraceHandle, TryContext
from tryit.runtime.sampling import Sampler
from tryit.service import TryRegistry


@pytest.mark.parametrize("marker", ["on", "ON", " On ", "oN"])
def test_marker_is_case_insensitive(marker: str) -> None:
    assert Sampler().is_marked(marker)


@pytest.mark.parametrize("marker", [None, "", "off", "true", "1", "onn"])
def test_unmarked_values(marker: str | None) -> None:
    sampler = Sampler()
    assert not sampler.is_marked(marker)
    assert sampler.decide(marker) is None


def test_marked_generates_fresh_handles() -> None:
    sampler = Sampler()
    first, second = sampler.decide("on"), sampler.decide("on")
    assert first is not None and second is not None
    assert first != second


def test_marked_adopts_carried_id() -> None:
    carried = TraceHandle.new()
    assert Sampler().decide("on", str(carried)) == carried


def test_carried_id_ignored_when_unmarked() -> None:
    assert Sampler().decide(None, "garbage") is None


def test_malformed_carried_id_is_rejected() -> None:
    with pytest.raises(InvalidTryIdError):
        Sampler().decide("on", "garbage")


def test_blank_carried_id_generates() -> None:
    assert Sampler().decide("on", "  ") is not None


def test_unit_of_work_installs_and_releases() -> None:
    registry = TryRegistry()
    sampler = Sampler(registry=registry)
    with sampler.unit_of_work("on") as handle:
        assert handle is not None
        assert TryContext.get() == handle
        assert str(handle) in registry
    assert TryContext.get() is None


def test_unsampled_unit_of_work_clears_ambient_handle() -> None:
    sampler = Sampler()
    with TryContext.set(TraceHandle.new()):
        with sampler.unit_of_work(None) as handle:
            assert handle is None
            assert TryContext.get() is None


def test_from_settings_uses_configured_names() -> None:
    settings = TryitSettings(sampling={"header_name": "X-Trace-Me", "enabled_value": "yes"})
    sampler = Sampler.from_settings(settings)
    assert sampler.header_name == "X-Trace-Me"
    assert sampler.is_marked("YES")
    assert not sampler.is_marked("on")
