"""Tests for settings and error classification."""

from __future__ import annotations

import pytest

from tryit.foundation.config import TryitSettings, clear_settings_cache, get_settings
from tryit.foundation.errors import (
    ErrorCode,
    InvalidPaginationError,
    InvalidTryIdError,
    TryError,
    TryException,
    classify_exception,
)


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════


def test_defaults() -> None:
    settings = TryitSettings()
    assert settings.sampling.header_name == "X-Try"
    assert settings.sampling.enabled_value == "on"
    assert settings.sampling.try_id_header == "X-Try-Id"
    assert settings.storage.backend == "memory"
    assert settings.instrumentation.allowed_namespaces == []
    assert settings.api.prefix == "/tries"
    assert settings.api.default_page_size == 5
    assert settings.uses_external_backend is False


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRYIT_STORAGE_BACKEND", "tempo")
    monkeypatch.setenv("TRYIT_TEMPO_BASE_URL", "http://tempo:3200/")
    monkeypatch.setenv("TRYIT_TEMPO_MAX_WAIT", "3")
    monkeypatch.setenv("TRYIT_INSTRUMENTATION_ALLOWED_NAMESPACES", "shop.services, shop.repositories,")
    clear_settings_cache()

    settings = get_settings()
    assert settings.uses_external_backend is True
    assert settings.tempo.base_url == "http://tempo:3200"
    assert settings.tempo.max_wait == 3.0
    assert settings.instrumentation.allowed_namespaces == ["shop.services", "shop.repositories"]
    assert get_settings() is settings


def test_invalid_values_rejected() -> None:
    with pytest.raises(ValueError):
        TryitSettings(storage={"backend": "cassandra"})
    with pytest.raises(ValueError):
        TryitSettings(api={"default_page_size": 0})


# ═════════════════════════════════════════════════════════════════════════════
# Errors
# ═════════════════════════════════════════════════════════════════════════════


def test_invalid_try_id_error_body() -> None:
    exc = InvalidTryIdError("abc")
    assert exc.status_code == 400
    assert exc.error.code is ErrorCode.INVALID_TRY_ID
    assert exc.error.details == "abc"
    assert exc.error.model_dump(mode="json")["is_client_error"] is True


def test_pagination_error() -> None:
    exc = InvalidPaginationError("size must be between 1 and 100", details="0")
    assert exc.status_code == 400
    assert str(exc) == "size must be between 1 and 100"


def test_server_side_error_maps_to_500() -> None:
    exc = TryException(TryError.create("backend down", ErrorCode.BACKEND_UNAVAILABLE))
    assert exc.status_code == 500
    assert exc.error.is_client_error is False


def test_error_message_accepts_exception() -> None:
    assert TryError(message=RuntimeError("boom")).message == "boom"


@pytest.mark.parametrize(("exc", "code"), [
    (TimeoutError("read timed out"), ErrorCode.TIMEOUT),
    (ConnectionError("connect refused"), ErrorCode.BACKEND_UNAVAILABLE),
    (ValueError("JSON payload malformed"), ErrorCode.PARSE_ERROR),
    (KeyError("x"), ErrorCode.UNKNOWN),
    (InvalidTryIdError("x"), ErrorCode.INVALID_TRY_ID),
])
def test_classify_exception(exc: BaseException, code: ErrorCode) -> None:
    assert classify_exception(exc) is code
