"""Type aliases shared across the tracing pipeline."""

from __future__ import annotations

from typing import Any, Union

# Any for recursive slots to avoid Pydantic resolution issues
JsonValue = Union[str, int, float, bool, None, list[Any], dict[str, Any]]
JsonDict = dict[str, Any]

# Span attributes are flattened to strings on the wire
Attributes = dict[str, str]
