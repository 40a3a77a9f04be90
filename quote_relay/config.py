"""Function settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

SUPPORTED_EXPORTERS = ("console", "otlp")


class Settings(BaseSettings):
    """Function settings loaded from environment variables."""

    # Service identity
    otel_service_name: str = Field(default="quotes-function", description="Service name on every span")
    service_version: str = Field(default="0.1.0", description="Service version resource attribute")
    environment: str = Field(default="development", description="Deployment environment")

    # Outbound endpoints
    quotes_url: str = Field(
        default="https://dummyjson.com/quotes/random",
        description="Upstream quote source (GET)",
    )
    target_url: Optional[str] = Field(
        default=None,
        description="Sink that receives each quote (POST). Required at invocation time.",
    )
    http_timeout_seconds: float = Field(default=10.0, description="Timeout for each outbound call")

    # Span pipeline
    span_exporter: str = Field(default="console", description="Span exporter (console/otlp)")
    lambda_span_processor_queue_size: int = Field(
        default=2048, description="Max spans buffered by the batch processor"
    )
    otel_bsp_schedule_delay: int = Field(
        default=1000, description="Delay between scheduled exports (ms)"
    )
    otel_bsp_max_export_batch_size: int = Field(
        default=512, description="Max spans per export batch"
    )
    telemetry_flush_timeout_ms: int = Field(
        default=5000, description="Upper bound for the end-of-invocation flush (ms)"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("span_exporter")
    @classmethod
    def validate_span_exporter(cls, v: str) -> str:
        """Only exporters the function knows how to build are accepted."""
        v = v.strip().lower()
        if v not in SUPPORTED_EXPORTERS:
            raise ValueError(
                f"Unsupported span exporter '{v}'. Must be one of: {', '.join(SUPPORTED_EXPORTERS)}"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    def require_target_url(self) -> str:
        """
        Return the sink URL.

        Raises:
            ConfigurationError: If TARGET_URL is unset or blank
        """
        if not self.target_url or not self.target_url.strip():
            raise ConfigurationError("TARGET_URL environment variable is not set")
        return self.target_url.strip()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache so a warm Lambda container reads the environment once.
    """
    return Settings()
