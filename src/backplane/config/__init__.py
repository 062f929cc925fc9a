"""
Backplane configuration.

Provides:
- BackendConfig / ResourceLimits models (immutable, Pydantic)
- Naming conventions for provisioned resources
- Pydantic-based process settings (environment variables, .env files)
- YAML backend config loading
"""

from backplane.config.loader import get_config_path, load_backend_config, parse_backend_config
from backplane.config.models import (
    BackendConfig,
    DefaultNamingConvention,
    NamingConvention,
    ResourceLimits,
)
from backplane.config.settings import Settings, get_settings

__all__ = [
    "BackendConfig",
    "DefaultNamingConvention",
    "NamingConvention",
    "ResourceLimits",
    "Settings",
    "get_settings",
    "get_config_path",
    "load_backend_config",
    "parse_backend_config",
]
