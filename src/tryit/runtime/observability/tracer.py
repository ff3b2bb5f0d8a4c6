"""Instrumentation hook: opens and closes spans around calls of a sampled unit of work.

The hook contract is two calls:
    token = tracer.begin(effective_class, method_name, parameters, args)
    tracer.end(token, error)

begin() returns None (and the call simply runs untraced) when:
- no try handle is ambient (the unit of work was not sampled)
- instrumentation is disabled or the allow-list is empty
- the effective class lives outside the allow-list, or inside tryit itself
- introspecting the call fails for any reason

Interception is explicit: decorate with @traced(), or wrap whole classes and
modules with instrument_class() / instrument_module().

Example:
    >>> tracer = Tracer(allowed_namespaces=("shop.services",), exporter=StoreExporter(store))
    >>> tracer.configure_global()
    >>> @traced()
    ... def place(self, sku: str, qty: int) -> Order: ...
"""

from __future__ import annotations

import inspect
import types
import typing
from collections.abc import Sequence
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, ParamSpec, TypeVar

from tryit.runtime.context import TryContext
from tryit.runtime.observability.logging import get_logger

from .exporter import Exporter, NoOpExporter
from .span import TRY_ID_ATTRIBUTE, Span, SpanData, SpanKind

if TYPE_CHECKING:
    from types import TracebackType, ModuleType

    from tryit.foundation.config import TryitSettings

P = ParamSpec("P")
T = TypeVar("T")

log = get_logger("tryit.tracer")

_active_span: ContextVar[Span | None] = ContextVar("tryit_active_span", default=None)

# The package's own namespace is never instrumented
_INTERNAL_PREFIX = "tryit"

_MISSING: Any = object()


def current_span() -> Span | None:
    return _active_span.get()


def current_span_id() -> str | None:
    return span.span_id if (span := _active_span.get()) else None


@dataclass(frozen=True, slots=True)
class ParameterInfo:
    """Declared parameter of an instrumented call: name plus annotation (type, string, or None)."""

    name: str
    annotation: object = None


@dataclass(slots=True)
class SpanToken:
    """Handle returned by begin(); pass it back to end()."""

    span: Span
    _token: Token[Span | None] | None = field(repr=False)
    _parent: Span | None = field(default=None, repr=False)


@dataclass(slots=True)
class Tracer:
    """Creates spans for allow-listed calls while a try handle is ambient.

    Args:
        exporter: Where closed spans go
        allowed_namespaces: Dotted prefixes of effective classes to trace
        enabled: Master switch
        service_name: Recorded on server spans
    """

    exporter: Exporter = field(default_factory=NoOpExporter)
    allowed_namespaces: tuple[str, ...] = ()
    enabled: bool = True
    service_name: str = "tryit"

    @classmethod
    def from_settings(cls, settings: TryitSettings, exporter: Exporter) -> Tracer:
        return cls(exporter=exporter, allowed_namespaces=tuple(settings.instrumentation.allowed_namespaces),
                   enabled=settings.instrumentation.enabled, service_name=settings.service_name)

    def configure_global(self) -> None:
        """Set this tracer as the process-wide instance used by @traced()."""
        global _tracer
        _tracer = self

    @classmethod
    def current(cls) -> Tracer:
        """Global tracer, or a disabled one if none is configured."""
        return _tracer or _DISABLED

    # ─────────────────────────────────────────────────────────────────────
    # Allow-list
    # ─────────────────────────────────────────────────────────────────────

    def is_allowed(self, namespace: str) -> bool:
        """Whether a dotted namespace (module or module.Class) is instrumented."""
        if not self.enabled or not self.allowed_namespaces or _under(namespace, _INTERNAL_PREFIX):
            return False
        return any(_under(namespace, p) for p in self.allowed_namespaces)

    def effective_class(self, cls: type) -> type | None:
        """First class in cls's MRO that lives in an allowed namespace (e.g. the real class behind a proxy)."""
        for candidate in cls.__mro__:
            if candidate is not object and self.is_allowed(_qualified(candidate)):
                return candidate
        return None

    # ─────────────────────────────────────────────────────────────────────
    # Hook
    # ─────────────────────────────────────────────────────────────────────

    def begin(
        self,
        effective_class: type | str,
        method_name: str,
        parameters: Sequence[ParameterInfo] = (),
        args: Sequence[object] = (),
        *,
        kind: SpanKind = SpanKind.INTERNAL,
    ) -> SpanToken | None:
        """Open a span named SimpleClass.method, or return None if the call is not traced."""
        if TryContext.get() is None or not self.enabled:
            return None
        try:
            namespace = _qualified(effective_class) if isinstance(effective_class, type) else effective_class
            if not self.is_allowed(namespace):
                return None
            simple = namespace.rsplit(".", 1)[-1]
            attrs: dict[str, object] = {
                "code.namespace": namespace,
                "code.function": method_name,
                "code.parameters.count": len(parameters),
            }
            for i, param in enumerate(parameters):
                arg = args[i] if i < len(args) else _MISSING
                attrs[f"code.parameter.{i}.type"] = _type_name(param.annotation, arg)
                attrs[f"code.parameter.{i}.name"] = param.name
        except Exception as e:  # noqa: BLE001 - introspection failure means untraced, never a failed call
            log.debug("instrumentation skipped", method=method_name, error=str(e))
            return None
        return self.start_span(f"{simple}.{method_name}", kind, attrs)

    def end(self, token: SpanToken | None, error: BaseException | None = None) -> SpanData | None:
        """Close the span. Errors are recorded on it; re-raising stays with the caller."""
        if token is None:
            return None
        if error is not None:
            token.span.record_exception(error)
        data = token.span.end()
        if token._token is not None:
            try:
                _active_span.reset(token._token)
            except ValueError:
                # Ended from a different context than it began in
                _active_span.set(token._parent)
        try:
            self.exporter.export([data])
        except Exception as e:  # noqa: BLE001 - export must never reach application code
            log.warning("span export failed", span=data.name, error=str(e))
        return data

    def start_span(self, name: str, kind: SpanKind = SpanKind.INTERNAL,
                   attributes: dict[str, object] | None = None, *, activate: bool = True) -> SpanToken | None:
        """Open a span under the active one. No allow-list check; None when not sampled.

        With activate=False the span does not become the active span (for leaf
        spans whose end may never be observed, e.g. client calls that fail in transport).
        """
        if (handle := TryContext.get()) is None or not self.enabled:
            return None
        trace_id = handle.value.hex
        parent = _active_span.get()
        span = Span(name=name, trace_id=trace_id, kind=kind, try_id=str(handle),
                    parent_id=parent.span_id if parent and parent.trace_id == trace_id else None)
        span.set_attributes({**(attributes or {}), TRY_ID_ATTRIBUTE: str(handle)})
        return SpanToken(span, _active_span.set(span) if activate else None, parent)

    def span(self, name: str, kind: SpanKind = SpanKind.INTERNAL,
             attributes: dict[str, object] | None = None) -> SpanContextManager:
        """Context manager over start_span/end.

        Example:
            >>> with tracer.span("http get /orders", SpanKind.SERVER) as span:
            ...     if span: span.set_attribute("http.status_code", 200)
        """
        return SpanContextManager(self, name, kind, attributes or {})

    def shutdown(self) -> None:
        self.exporter.shutdown()


_tracer: Tracer | None = None
_DISABLED = Tracer(enabled=False)


def reset_tracer() -> None:
    """Drop the global tracer (useful for testing)."""
    global _tracer
    _tracer = None


@dataclass(slots=True)
class SpanContextManager:
    """Ends the span on exit and records any exception without suppressing it."""

    tracer: Tracer
    name: str
    kind: SpanKind
    attributes: dict[str, object]
    _token: SpanToken | None = None

    def __enter__(self) -> Span | None:
        self._token = self.tracer.start_span(self.name, self.kind, self.attributes)
        return self._token.span if self._token else None

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        self.tracer.end(self._token, exc_val)

    async def __aenter__(self) -> Span | None:
        return self.__enter__()

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                        exc_tb: TracebackType | None) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


# ─────────────────────────────────────────────────────────────────────────────
# Decorator API
# ─────────────────────────────────────────────────────────────────────────────


def traced(
    tracer: Tracer | None = None,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    namespace: str | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Trace every call of the decorated function or method.

    For methods (first parameter self/cls) the effective class is resolved
    from the receiver at call time; for plain functions it is namespace,
    defaulting to the defining module.
    If the signature cannot be read, the function is returned unwrapped.

    Example:
        >>> class OrderService:
        ...     @traced()
        ...     def place(self, sku: str, qty: int) -> Order: ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        try:
            sig = inspect.signature(func)
        except (TypeError, ValueError):
            return func
        params = list(sig.parameters.values())
        is_method = bool(params) and params[0].name in ("self", "cls")
        declared = [ParameterInfo(p.name, None if p.annotation is inspect.Parameter.empty else p.annotation)
                    for p in (params[1:] if is_method else params)
                    if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)]
        module = namespace or func.__module__ or func.__name__

        def _begin(args: tuple[object, ...], kwargs: dict[str, object]) -> tuple[Tracer, SpanToken | None]:
            t = tracer or Tracer.current()
            if not t.enabled or TryContext.get() is None:
                return t, None
            try:
                if is_method:
                    receiver = args[0]
                    owner = receiver if isinstance(receiver, type) else type(receiver)
                    if (effective := t.effective_class(owner)) is None:
                        return t, None
                    target: type | str = effective
                else:
                    target = module
                bound = sig.bind_partial(*args, **kwargs).arguments
                values = [bound.get(p.name, _MISSING) for p in declared]
            except Exception:  # noqa: BLE001 - bad arguments surface from the real call below
                return t, None
            return t, t.begin(target, func.__name__, declared, values, kind=kind)

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            t, token = _begin(args, kwargs)
            if token is None:
                return func(*args, **kwargs)
            try:
                result = func(*args, **kwargs)
            except BaseException as e:
                t.end(token, e)
                raise
            t.end(token)
            return result

        @wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            t, token = _begin(args, kwargs)
            if token is None:
                return await func(*args, **kwargs)  # type: ignore[misc]
            try:
                result = await func(*args, **kwargs)  # type: ignore[misc]
            except BaseException as e:
                t.end(token, e)
                raise
            t.end(token)
            return result

        chosen = async_wrapper if inspect.iscoroutinefunction(func) else wrapper
        chosen.__tryit_traced__ = True  # type: ignore[attr-defined]
        return chosen  # type: ignore[return-value]

    return decorator


def instrument_class(cls: type[T], tracer: Tracer | None = None) -> type[T]:
    """Wrap every public function defined on cls (instance, class and static methods) in place."""
    deco = traced(tracer)
    for name, attr in list(vars(cls).items()):
        if name.startswith("_"):
            continue
        match attr:
            case staticmethod() if not getattr(attr.__func__, "__tryit_traced__", False):
                # No receiver: traced as a function of the owning class's namespace
                setattr(cls, name, staticmethod(traced(tracer, namespace=_qualified(cls))(attr.__func__)))
            case classmethod() if not getattr(attr.__func__, "__tryit_traced__", False):
                setattr(cls, name, classmethod(deco(attr.__func__)))
            case types.FunctionType() if not getattr(attr, "__tryit_traced__", False):
                setattr(cls, name, deco(attr))
    return cls


def instrument_module(module: ModuleType, tracer: Tracer | None = None) -> ModuleType:
    """Wrap the functions and classes a module defines (not the ones it imports)."""
    deco = traced(tracer)
    for name, attr in list(vars(module).items()):
        if name.startswith("_") or getattr(attr, "__module__", None) != module.__name__:
            continue
        if isinstance(attr, type):
            instrument_class(attr, tracer)
        elif isinstance(attr, types.FunctionType) and not getattr(attr, "__tryit_traced__", False):
            setattr(module, name, deco(attr))
    return module


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _qualified(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _under(namespace: str, prefix: str) -> bool:
    prefix = prefix.rstrip(".")
    return namespace == prefix or namespace.startswith(prefix + ".")


_NONE_TYPE = type(None)


def _is_erased(annotation: object) -> bool:
    return (annotation is None or annotation is Any or annotation is object
            or isinstance(annotation, TypeVar) or annotation in ("Any", "object", "typing.Any"))


def _type_name(annotation: object, arg: object) -> str:
    """Low-cardinality type name: the declared type, or the runtime type when the declaration is erased."""
    if _is_erased(annotation):
        return type(arg).__name__ if arg is not _MISSING else "object"
    if isinstance(annotation, str):
        return annotation
    if annotation is _NONE_TYPE:
        return "None"
    if isinstance(annotation, type) and not typing.get_args(annotation):
        return annotation.__name__
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        return " | ".join(_type_name(a, _MISSING) for a in typing.get_args(annotation))
    if origin is not None:
        return getattr(origin, "__name__", str(origin))
    return str(annotation).replace("typing.", "")
