"""Settings for Traffic applications.

Values come from environment variables (nested sections use the ``__``
delimiter, e.g. ``NEGOTIATION_CONFIG__DEFAULT_RESPONSE_TYPE``), then a
``.env`` file, then the defaults below. :func:`get_settings` caches the
result; tests clear the cache between cases.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from traffic.core.exceptions import MediaTypeError
from traffic.core.mime import MediaType


class LogConfig(BaseModel):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths to exclude from request logging",
    )
    slow_request_threshold_ms: int = Field(
        default=1000,
        gt=0,
        description="Threshold for slow request warnings (milliseconds)",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    enable_tracing: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class NegotiationConfig(BaseModel):
    """Content negotiation configuration."""

    default_response_type: str = Field(
        default="application/json",
        description="Media type used for issues when the client sends no Accept header",
    )
    log_response_payloads: bool = Field(
        default=True,
        description="Log (sanitized) handler payloads rejected by their response schema",
    )

    @field_validator("default_response_type", mode="after")
    @classmethod
    def validate_media_type(cls, v: str) -> str:
        """Ensure the default response type is a concrete media type."""
        try:
            media_type = MediaType.parse(v)
        except MediaTypeError as exc:
            raise ValueError(exc.message) from exc
        if media_type.is_wildcard:
            msg = "Default response type cannot be a wildcard range"
            raise ValueError(msg)
        return media_type.type


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    # Application settings
    app_name: str = Field(default="Traffic", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )

    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )

    negotiation_config: NegotiationConfig = Field(
        default_factory=NegotiationConfig,
        description="Content negotiation configuration",
    )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

        if (
            self.environment == "production"
            and self.observability_config.trace_sample_rate == 1.0
        ):
            self.observability_config.trace_sample_rate = 0.1

    def _detect_formatter(self) -> Literal["console", "json"]:
        """Auto-detect log formatter based on environment."""
        # Containers on managed platforms expect structured logs
        if os.getenv("K_SERVICE") or os.getenv("AWS_EXECUTION_ENV"):
            return "json"

        if self.environment == "development":
            return "console"
        return "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
