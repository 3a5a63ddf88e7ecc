from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_NAME = "vetrina-service"


class ServiceSettings(BaseSettings):
    """Base settings shared by the Vetrina FastAPI services and the storefront client."""

    app_name: str = Field(default=DEFAULT_APP_NAME)
    environment: Literal["local", "dev", "staging", "prod"] = Field(default="local")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    service_host: str = Field(default="0.0.0.0")
    service_port: int = Field(default=8000)
    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    tracing_endpoint: str | None = Field(default=None)
    tracing_protocol: Literal["http/protobuf", "grpc"] = Field(default="http/protobuf")
    tracing_insecure: bool = Field(default=True)
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    database_url: str | None = Field(default=None)
    redis_url: str | None = Field(default=None)
    ordering_service_url: str | None = Field(default=None)
    notification_service_url: str | None = Field(default=None)
    session_cookie_name: str = Field(default="session")
    product_search_limit: int = Field(default=10, ge=1, le=100)
    search_debounce_seconds: float = Field(default=0.3, ge=0.0)
    draft_ttl_hours: int = Field(default=24, ge=1)
    notification_page_size: int = Field(default=20, ge=1, le=100)
    notification_poll_interval_seconds: int = Field(default=30, ge=1)

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="VETRINA_", extra="ignore"
    )


@lru_cache
def get_settings() -> ServiceSettings:
    """Return cached service settings."""

    return ServiceSettings()
