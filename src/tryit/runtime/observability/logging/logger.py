"""Structured logging correlated with the ambient try.

Every entry emitted while a sampled unit of work is active carries its
try_id, plus the span_id of the innermost open span, so the log lines of
one try can be pulled out next to its trace.

    >>> configure_logging("json")
    >>> log = get_logger("tryit.store", backend="memory")
    >>> log.info("span recorded", span_count=3)
    {"timestamp": "...", "level": "info", "event": "span recorded", "logger": "tryit.store", ...}
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO

import orjson

from tryit.foundation.errors import JsonDict, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

_scoped: ContextVar[JsonDict] = ContextVar("tryit_log_scope", default={})


# ─────────────────────────────────────────────────────────────────────────────
# Entries and Renderers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: float
    level: str
    event: str
    fields: JsonDict

    @property
    def iso_time(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    @property
    def clock_time(self) -> str:
        """HH:MM:SS.mmm in UTC."""
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


class LogRenderer(Protocol):
    def render(self, entry: LogEntry) -> None: ...


_LEVEL_COLORS = {"debug": "\033[2m", "info": "\033[32m", "warning": "\033[33m", "error": "\033[31m"}
_RESET = "\033[0m"


@dataclass(slots=True)
class ConsoleRenderer:
    """One human-readable line per entry: time [level] event key=value ..."""

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None: only when writing to a terminal

    def __post_init__(self) -> None:
        if self.colors is None:
            self.colors = getattr(self.output, "isatty", lambda: False)()

    def render(self, entry: LogEntry) -> None:
        level = f"[{entry.level}]"
        if self.colors:
            level = f"{_LEVEL_COLORS.get(entry.level, '')}{level}{_RESET}"
        pairs = " ".join(f"{k}={_console_value(v)}" for k, v in sorted(entry.fields.items()))
        print(f"{entry.clock_time} {level} {entry.event} {pairs}".rstrip(), file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines, one object per entry."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        line = orjson.dumps({"timestamp": entry.iso_time, "level": entry.level, "event": entry.event, **entry.fields},
                            option=orjson.OPT_NON_STR_KEYS, default=str)
        print(line.decode(), file=self.output)


class NoOpRenderer:
    def render(self, entry: LogEntry) -> None:
        pass


def _console_value(v: object) -> str:
    match v:
        case str(): return f'"{v}"'
        case bool(): return str(v).lower()
        case _: return str(v)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _LogConfig:
    renderer: LogRenderer = field(default_factory=ConsoleRenderer)
    level: int = logging.INFO
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


_config = _LogConfig()


def configure_logging(
    format: str = "console",  # noqa: A002 - mirrors LoggingSettings.format
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Install the process-wide renderer ("console", "json" or "none") and minimum level."""
    match format:
        case "console": renderer: LogRenderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        case "json": renderer = JsonRenderer(output=output or sys.stdout)
        case "none": renderer = NoOpRenderer()
        case _: raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    with _config.lock:
        _config.renderer, _config.level = renderer, getattr(logging, level.upper(), logging.INFO)
    return renderer


# ─────────────────────────────────────────────────────────────────────────────
# Logger
# ─────────────────────────────────────────────────────────────────────────────


def _correlation() -> JsonDict:
    from tryit.runtime.context import TryContext
    from tryit.runtime.observability.tracer import current_span_id

    if (try_id := TryContext.current_id()) is None:
        return {}
    span_id = current_span_id()
    return {"try_id": try_id, "span_id": span_id} if span_id else {"try_id": try_id}


@dataclass(frozen=True, slots=True)
class BoundLogger:
    """Logger carrying fixed fields. bind() returns a new logger; the original is untouched.

    Field precedence, lowest first: log_context() scope, bound fields,
    call-site keywords, try correlation.
    """

    context: JsonDict = field(default_factory=dict)

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return BoundLogger({**self.context, **kw})

    def _log(self, level: int, event: str, kw: JsonDict) -> None:
        if level < _config.level:
            return
        fields = {**_scoped.get(), **self.context, **kw, **_correlation()}
        _config.renderer.render(LogEntry(time.time(), logging.getLevelName(level).lower(), event, fields))

    def debug(self, event: str, **kw: JsonValue) -> None: self._log(logging.DEBUG, event, kw)
    def info(self, event: str, **kw: JsonValue) -> None: self._log(logging.INFO, event, kw)
    def warning(self, event: str, **kw: JsonValue) -> None: self._log(logging.WARNING, event, kw)
    def error(self, event: str, **kw: JsonValue) -> None: self._log(logging.ERROR, event, kw)


def get_logger(name: str | None = None, **fields: JsonValue) -> BoundLogger:
    """Logger for one area of tryit, e.g. get_logger("tryit.store.tempo")."""
    return BoundLogger({**fields, "logger": name} if name else dict(fields))


class log_context:
    """Add fields to every entry logged inside the block, in this context only."""

    __slots__ = ("_fields", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._fields = kw
        self._token = None

    def __enter__(self) -> log_context:
        self._token = _scoped.set({**_scoped.get(), **self._fields})
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        if self._token is not None:
            _scoped.reset(self._token)
            self._token = None
