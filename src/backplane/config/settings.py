"""
Process-level settings using Pydantic.

Provides environment-based defaults with the BACKPLANE_ prefix. These fill
in whatever a BackendConfig leaves unset.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Defaults applied to backends that do not set them explicitly
    default_environment: str = "dev"
    default_location: str = "eastus"

    # Logging
    log_level: str = "INFO"

    # Optional backend config file picked up by load_backend_config()
    config_path: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "BACKPLANE_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
