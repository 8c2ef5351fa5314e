"""
Shared configuration management for the profile gateway.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream REST API
    upstream_base_url: str = Field(default="https://jsonplaceholder.typicode.com")
    upstream_timeout_seconds: float = Field(default=5.0, gt=0)
    upstream_max_attempts: int = Field(default=3, ge=1)
    upstream_retry_delay_seconds: float = Field(default=0.5, ge=0)
    upstream_backoff_strategy: str = Field(default="fixed")

    # Rate limiting
    rate_limit_max: int = Field(default=300, ge=1)
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    redis_url: Optional[str] = Field(default=None)
    trust_proxy_headers: bool = Field(default=False)

    # Compression
    compression_min_size: int = Field(default=1024, ge=0)

    # SWR cache
    swr_max_entries: Optional[int] = Field(default=None, ge=1)
    swr_coalesce_misses: bool = Field(default=False)

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "gateway"
    port: int = 3000
    host: str = "0.0.0.0"


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    Explicit ``overrides`` win over environment variables, which is what
    tests use to pin settings without touching the process environment.
    """
    return ServiceConfig(service_name=service_name, **overrides)
