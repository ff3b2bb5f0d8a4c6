"""Tests for structured logging and its try-id correlation."""

from __future__ import annotations

import io

import orjson
import pytest

from tryit.runtime.context import TraceHandle, TryContext
from tryit.runtime.observability import Tracer
from tryit.runtime.observability.logging import LogEntry, configure_logging, get_logger, log_context


def json_lines(buf: io.StringIO) -> list[dict[str, object]]:
    return [orjson.loads(line) for line in buf.getvalue().splitlines() if line]


def test_json_output_carries_bound_and_call_context() -> None:
    buf = io.StringIO()
    configure_logging("json", output=buf)
    get_logger("tryit.test", component="store").info("span recorded", span_count=3)

    (entry,) = json_lines(buf)
    assert entry["event"] == "span recorded"
    assert entry["level"] == "info"
    assert entry["logger"] == "tryit.test"
    assert entry["component"] == "store"
    assert entry["span_count"] == 3
    assert "timestamp" in entry


def test_entries_are_correlated_with_try_and_span(tracer: Tracer) -> None:
    buf = io.StringIO()
    configure_logging("json", output=buf)
    log = get_logger("tryit.test")
    handle = TraceHandle.new()

    log.info("outside")
    with TryContext.set(handle), tracer.span("OrderService.place") as span:
        log.info("inside")

    outside, inside = json_lines(buf)
    assert "try_id" not in outside
    assert inside["try_id"] == str(handle)
    assert inside["span_id"] == span.span_id


def test_level_filtering() -> None:
    buf = io.StringIO()
    configure_logging("json", "WARNING", output=buf)
    log = get_logger("tryit.test")
    log.debug("hidden")
    log.info("hidden")
    log.warning("shown")
    assert [e["event"] for e in json_lines(buf)] == ["shown"]


def test_log_context_is_scoped() -> None:
    buf = io.StringIO()
    configure_logging("json", output=buf)
    log = get_logger()
    with log_context(request="r1"):
        log.info("first")
    log.info("second")
    first, second = json_lines(buf)
    assert first["request"] == "r1"
    assert "request" not in second


def test_bind_returns_new_logger() -> None:
    base = get_logger("tryit.test")
    bound = base.bind(a=1, b=2)
    assert bound.context == {"logger": "tryit.test", "a": 1, "b": 2}
    assert base.context == {"logger": "tryit.test"}


def test_console_output() -> None:
    buf = io.StringIO()
    configure_logging("console", output=buf, colors=False)
    get_logger("tryit.test").warning("poll exhausted", attempts=3)
    line = buf.getvalue().strip()
    assert "[warning] poll exhausted" in line
    assert "attempts=3" in line
    assert 'logger="tryit.test"' in line


def test_unknown_format() -> None:
    with pytest.raises(ValueError, match="Unknown format"):
        configure_logging("xml")


def test_log_entry_timestamps() -> None:
    entry = LogEntry(0.0, "info", "e", {})
    assert entry.iso_time.startswith("1970-01-01T00:00:00")
    assert entry.clock_time == "00:00:00.000"
