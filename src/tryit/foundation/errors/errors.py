"""Standardized error handling for the try pipeline.

Provides error codes and structured error bodies for the query surface.
Uses Pydantic for validation and serialization.

Only validation errors (bad try id, bad pagination) are ever raised to a
caller. Backend and instrumentation failures are classified and logged,
then degraded to "no data yet" where they happen.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Machine-readable error classification."""
    INVALID_TRY_ID = "INVALID_TRY_ID"
    INVALID_PAGINATION = "INVALID_PAGINATION"
    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    PARSE_ERROR = "PARSE_ERROR"
    INSTRUMENTATION_ERROR = "INSTRUMENTATION_ERROR"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in insertion order
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connect": ErrorCode.BACKEND_UNAVAILABLE,
    "network": ErrorCode.BACKEND_UNAVAILABLE,
    "transport": ErrorCode.BACKEND_UNAVAILABLE,
    "status": ErrorCode.BACKEND_UNAVAILABLE,
    "parse": ErrorCode.PARSE_ERROR,
    "json": ErrorCode.PARSE_ERROR,
    "decode": ErrorCode.PARSE_ERROR,
    "validation": ErrorCode.PARSE_ERROR,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())

# Codes a caller is allowed to see as a 400
_CLIENT_CODES: frozenset[ErrorCode] = frozenset({ErrorCode.INVALID_TRY_ID, ErrorCode.INVALID_PAGINATION})


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map exception to error code via pattern matching on name/message."""
    if isinstance(exc, TryException):
        return exc.error.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


class TryError(BaseModel):
    """Structured error body returned by the query surface.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        details: Optional detail (e.g. the rejected value)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Try Error",
            "examples": [{"code": "INVALID_TRY_ID", "message": "Invalid tryId format", "details": "abc"}],
        },
    )

    code: ErrorCode = ErrorCode.UNKNOWN
    message: Annotated[str, Field(min_length=1)]
    details: str | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept Exception objects and extract message."""
        return str(v) if isinstance(v, Exception) else v

    @computed_field
    @property
    def is_client_error(self) -> bool:
        """Whether this error maps to a 400-class response."""
        return self.code in _CLIENT_CODES

    @classmethod
    def create(cls, message: str, code: ErrorCode = ErrorCode.UNKNOWN, *, details: str | None = None) -> Self:
        return cls(code=code, message=message, details=details)


class TryException(Exception):
    """Exception wrapping a TryError for raising."""

    __slots__ = ("error",)

    def __init__(self, error: TryError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def status_code(self) -> int:
        return 400 if self.error.is_client_error else 500


class InvalidTryIdError(TryException):
    """Raised when a try id is not a string-rendered 128-bit identifier."""

    __slots__ = ("try_id",)

    def __init__(self, try_id: object) -> None:
        self.try_id = try_id
        super().__init__(TryError(
            code=ErrorCode.INVALID_TRY_ID,
            message=f"Invalid tryId format: '{try_id}'. tryId must be a valid UUID.",
            details=str(try_id),
        ))


class InvalidPaginationError(TryException):
    """Raised when page/size query parameters are out of range."""

    __slots__ = ()

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(TryError(code=ErrorCode.INVALID_PAGINATION, message=message, details=details))
