"""Application settings with Pydantic."""

from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from observable_api.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service
    service_name: str = "observable-api"
    service_version: str = "1.0.0"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    # External dependency
    external_url: str = "https://jsonplaceholder.typicode.com/todos/1"
    external_timeout_seconds: float = 10.0

    # Simulated downstream queries
    downstream_queries: list[str] = Field(
        default_factory=lambda: ["SELECT * FROM users", "SELECT * FROM products"]
    )
    downstream_max_delay_seconds: float = 0.5
    synthetic_latency_max_seconds: float = 0.5

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    loki_url: str | None = None
    loki_timeout_seconds: float = 2.0

    # Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://localhost:4317"
    trace_sample_rate: float = 1.0
    trace_log_spans: bool = False

    # Metrics
    process_metrics_enabled: bool = True

    @field_validator("external_timeout_seconds", "loki_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @field_validator("downstream_max_delay_seconds", "synthetic_latency_max_seconds")
    @classmethod
    def _non_negative_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("delay must not be negative")
        return value

    @field_validator("trace_sample_rate")
    @classmethod
    def _rate_in_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("trace_sample_rate must be within [0, 1]")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}", cause=e) from e
