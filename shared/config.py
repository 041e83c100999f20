"""
Shared configuration management for the Ledger Access Layer.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Remote store
    store_backend: Literal["postgrest", "memory"] = "postgrest"
    store_url: str = "http://localhost:54321"
    store_api_key: Optional[str] = None
    store_timeout_seconds: float = Field(default=10.0, gt=0)
    store_read_attempts: int = Field(default=3, ge=1)

    # Query cache
    query_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    query_cache_sweep_interval_seconds: float = Field(default=0.0, ge=0)

    # Metrics
    enable_metrics: bool = True


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
