"""Error handling for tryit.

- ErrorCode: Machine-readable error classification
- TryError/TryException: Structured error bodies and exceptions
- InvalidTryIdError/InvalidPaginationError: The only errors surfaced to callers
"""

from .errors import (
    ErrorCode,
    InvalidPaginationError,
    InvalidTryIdError,
    TryError,
    TryException,
    classify_exception,
)
from .types import Attributes, JsonDict, JsonValue

__all__ = [
    "ErrorCode", "TryError", "TryException", "classify_exception",
    "InvalidTryIdError", "InvalidPaginationError",
    "Attributes", "JsonDict", "JsonValue",
]
