"""Resolve class, method and parameters of a span, and its display name.

Structured attributes written by the instrumentation hook win:
    code.namespace, code.function, code.parameter.<n>.type / .name

Otherwise the span name is parsed:
    "http get /orders"                      -> HTTP / "http get /orders"
    "shop.OrderService.place(str sku, int)" -> shop.OrderService / place / [str sku, int]
    "anything else"                         -> None / "anything else"
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from .models import MethodInfo, Parameter

if TYPE_CHECKING:
    from tryit.runtime.observability import SpanData

HTTP_CLASS = "HTTP"
_HTTP_PREFIX = "http "


def parse_method(span: SpanData) -> MethodInfo:
    attrs = span.attributes
    namespace, function = attrs.get("code.namespace"), attrs.get("code.function")
    if namespace is not None or function is not None:
        return _from_attributes(attrs, namespace, function)
    return parse_span_name(span.name)


def _from_attributes(attrs: Mapping[str, str], namespace: str | None, function: str | None) -> MethodInfo:
    params: list[Parameter] = []
    idx = 0
    while True:
        ptype, pname = attrs.get(f"code.parameter.{idx}.type"), attrs.get(f"code.parameter.{idx}.name")
        if ptype is None and pname is None:
            break
        params.append(Parameter(type=ptype or "", name=pname or ""))
        idx += 1
    return MethodInfo(
        class_name=simple_name(namespace) if namespace is not None else None,
        method_name=function,
        parameters=tuple(params),
    )


def parse_span_name(name: str | None) -> MethodInfo:
    if not name:
        return MethodInfo()
    if name.startswith(_HTTP_PREFIX):
        return MethodInfo(class_name=HTTP_CLASS, method_name=name)

    # Split on the last dot outside the parameter list
    head, paren, rest = name.partition("(")
    dot = head.rfind(".")
    if dot <= 0 or dot == len(head) - 1:
        return MethodInfo(method_name=name)
    class_name, method = head[:dot], head[dot + 1:]
    if not paren:
        return MethodInfo(class_name=class_name, method_name=method)
    inner = rest[:rest.rfind(")")] if ")" in rest else rest
    params = tuple(_parse_parameter(p) for p in inner.split(",")) if inner.strip() else ()
    return MethodInfo(class_name=class_name, method_name=method, parameters=params)


def _parse_parameter(raw: str) -> Parameter:
    """Parse "Type name" or a bare "Type"."""
    text = raw.strip()
    ptype, sep, pname = text.rpartition(" ")
    if sep and ptype.strip() and pname:
        return Parameter(type=ptype.strip(), name=pname)
    return Parameter(type=text, name="")


def simple_name(qualified: str) -> str:
    return qualified.rsplit(".", 1)[-1]


# ─────────────────────────────────────────────────────────────────────────────
# Display names
# ─────────────────────────────────────────────────────────────────────────────


def display_name(span: SpanData, info: MethodInfo) -> str:
    """Use "http <verb> <path>" for http spans, "SimpleClass.method" when both parts are known, else the raw name."""
    if info.class_name == HTTP_CLASS:
        return _http_display_name(span, info)
    if info.class_name and info.method_name:
        return f"{simple_name(info.class_name)}.{info.method_name}"
    return span.name


def _http_display_name(span: SpanData, info: MethodInfo) -> str:
    attrs = span.attributes
    verb = attrs.get("method") or attrs.get("http.method")
    if verb is None and span.name.startswith(_HTTP_PREFIX):
        parts = span.name.split(" ", 2)
        if len(parts) >= 2:
            verb = parts[1]
    path: str | None = None
    if (url := attrs.get("http.url")) is not None:
        try:
            path = urlsplit(url).path or url
        except ValueError:
            path = url
    if path is None:
        path = attrs.get("uri")
    if verb and path:
        return f"http {verb.lower()} {path}"
    return span.name or info.method_name or HTTP_CLASS
