"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from tryit.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.storage.backend
    'memory'
    >>> settings.tempo.max_wait
    8.0

    # Or with environment variables:
    # TRYIT_STORAGE_BACKEND=tempo
    # TRYIT_TEMPO_BASE_URL=http://tempo:3200
    # TRYIT_INSTRUMENTATION_ALLOWED_NAMESPACES=shop.services,shop.repositories
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, NonNegativeFloat, PositiveFloat, PositiveInt, computed_field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="TRYIT_LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"


class SamplingSettings(BaseSettings):
    """Request marker configuration for opt-in sampling."""

    model_config = SettingsConfigDict(env_prefix="TRYIT_SAMPLING_", extra="ignore")

    header_name: str = Field(default="X-Try", description="Header/frame field that marks a unit of work for tracing")
    enabled_value: str = Field(default="on", description="Marker value that turns sampling on (case-insensitive)")
    try_id_header: str = Field(default="X-Try-Id", description="Header carrying the try id on responses and frames")


class InstrumentationSettings(BaseSettings):
    """Method instrumentation allow-list."""

    model_config = SettingsConfigDict(env_prefix="TRYIT_INSTRUMENTATION_", extra="ignore")

    enabled: bool = True
    allowed_namespaces: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Module prefixes whose call sites are traced (empty = nothing traced)",
    )

    @field_validator("allowed_namespaces", mode="before")
    @classmethod
    def _split_csv(cls, v: str | list[str]) -> list[str]:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v


class StorageSettings(BaseSettings):
    """Trace store strategy selection."""

    model_config = SettingsConfigDict(env_prefix="TRYIT_STORAGE_", extra="ignore")

    backend: Literal["memory", "tempo"] = "memory"
    max_spans_per_trace: PositiveInt = Field(default=10_000, description="Per-trace span buffer bound")
    max_traces: PositiveInt = Field(default=1_000, description="Traces kept before the oldest is evicted")


class TempoSettings(BaseSettings):
    """External trace backend (Tempo-compatible) query configuration."""

    model_config = SettingsConfigDict(env_prefix="TRYIT_TEMPO_", extra="ignore")

    base_url: str = "http://localhost:3200"
    connect_timeout: PositiveFloat = 5.0
    query_timeout: PositiveFloat = 30.0
    max_poll_attempts: Annotated[int, Field(ge=1, le=100)] = 10
    poll_interval: NonNegativeFloat = Field(default=0.5, description="Base delay between polls in seconds")
    backoff: Literal["constant", "linear", "exponential"] = "exponential"
    backoff_increment: NonNegativeFloat = Field(default=0.5, description="Step added per poll by linear backoff")
    backoff_multiplier: PositiveFloat = 1.5
    max_delay: PositiveFloat = Field(default=2.0, description="Cap on a single poll delay")
    max_wait: PositiveFloat = Field(default=8.0, description="Hard deadline for one fetch in seconds")
    otlp_endpoint: str | None = Field(default=None, description="OTLP collector endpoint for span export")

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")


class ApiSettings(BaseSettings):
    """Result query surface configuration."""

    model_config = SettingsConfigDict(env_prefix="TRYIT_API_", extra="ignore")

    prefix: str = "/tries"
    default_page_size: Annotated[int, Field(ge=1, le=100)] = 5
    max_page_size: Annotated[int, Field(ge=1, le=100)] = 100


class TryitSettings(BaseSettings):
    """Root settings for tryit.

    Loads configuration from environment variables with TRYIT_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        TRYIT_DEBUG=true
        TRYIT_LOG_LEVEL=DEBUG
        TRYIT_STORAGE_BACKEND=tempo
        TRYIT_TEMPO_MAX_WAIT=5
    """

    model_config = SettingsConfigDict(
        env_prefix="TRYIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")
    service_name: str = "tryit"

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sampling: SamplingSettings = Field(default_factory=SamplingSettings)
    instrumentation: InstrumentationSettings = Field(default_factory=InstrumentationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    tempo: TempoSettings = Field(default_factory=TempoSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    @computed_field
    @property
    def uses_external_backend(self) -> bool:
        """Whether spans are read back from the external backend."""
        return self.storage.backend == "tempo"


@lru_cache(maxsize=1)
def get_settings() -> TryitSettings:
    """Get the global settings instance (cached)."""
    return TryitSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
