"""
Shared configuration management for the backing services layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BACKING_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Remote cache
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_enabled: bool = Field(default=True)
    redis_connect_timeout: float = Field(default=10.0, gt=0)
    redis_socket_timeout: float = Field(default=5.0, gt=0)
    redis_health_check_interval: float = Field(default=30.0, gt=0)

    # Local cache
    local_cache_default_ttl: int = Field(default=600, gt=0)
    local_cache_check_period: float = Field(default=120.0, gt=0)
    local_cache_max_keys: int = Field(default=1000, gt=0)

    # Cache service
    cache_default_ttl: int = Field(default=600, gt=0)


class BackingConfig(BaseConfig):
    """Configuration for the cache and concurrency layer."""

    service_name: str = "backing"

    # Concurrency gates
    gate_db_read_capacity: int = Field(default=50, ge=1)
    gate_db_write_capacity: int = Field(default=10, ge=1)
    gate_external_api_capacity: int = Field(default=5, ge=1)
    gate_cpu_capacity: int = Field(default=2, ge=1)


def get_config(**overrides) -> BackingConfig:
    """Get configuration for the backing services layer."""
    return BackingConfig(**overrides)
