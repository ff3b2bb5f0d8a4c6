"""Configuration management using pydantic-settings."""

from .settings import (
    ApiSettings,
    InstrumentationSettings,
    LoggingSettings,
    SamplingSettings,
    StorageSettings,
    TempoSettings,
    TryitSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "ApiSettings",
    "InstrumentationSettings",
    "LoggingSettings",
    "SamplingSettings",
    "StorageSettings",
    "TempoSettings",
    "TryitSettings",
    "clear_settings_cache",
    "get_settings",
]
