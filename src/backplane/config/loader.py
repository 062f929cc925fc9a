"""
Backend configuration file loading.

Search order:
1. Explicit path
2. BACKPLANE_CONFIG_PATH setting
3. .backplane/backend.yaml (current directory)
4. Default configuration

File format::

    environment: prod
    location: westeurope
    tags:
      team: platform
    naming:
      prefix: acme
    limits:
      max_cosmos_accounts: 1
    providers:
      - cosmos-provider
      - storage-provider
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pydantic
import structlog
import yaml

from backplane.config.models import BackendConfig, DefaultNamingConvention
from backplane.config.settings import get_settings
from backplane.core.errors import ConfigurationError

logger = structlog.get_logger()

_KNOWN_KEYS = {"environment", "location", "tags", "naming", "limits", "providers"}


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the backend configuration file to use.

    Returns:
        Path to config file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        return path if path.exists() else None

    configured = get_settings().config_path
    if configured and Path(configured).exists():
        return Path(configured)

    cwd_config = Path.cwd() / ".backplane" / "backend.yaml"
    if cwd_config.exists():
        return cwd_config

    return None


def load_backend_config(path: str | Path | None = None) -> BackendConfig:
    """
    Load a BackendConfig from YAML.

    An explicit path that does not exist is an error; with no explicit path
    and nothing found, the default configuration is returned.
    """
    config_path = get_config_path(path)
    if config_path is None:
        if path:
            raise ConfigurationError(f"Config file not found: {path}", {"path": str(path)})
        return BackendConfig()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to read config file {config_path}: {e}", {"path": str(config_path)}
        ) from e

    logger.debug("loaded_backend_config", path=str(config_path))
    return parse_backend_config(data, source=str(config_path))


def parse_backend_config(data: Any, source: str = "<mapping>") -> BackendConfig:
    """Build a BackendConfig from already-parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Backend config must be a mapping, got {type(data).__name__}", {"path": source}
        )

    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigurationError(
            f"Unknown backend config keys: {', '.join(unknown)}",
            {"path": source, "keys": unknown},
        )

    values = {k: v for k, v in data.items() if k not in ("naming", "providers")}

    naming = data.get("naming")
    if naming is not None:
        if not isinstance(naming, dict):
            raise ConfigurationError("naming must be a mapping", {"path": source})
        values["naming"] = DefaultNamingConvention(
            prefix=naming.get("prefix"), separator=naming.get("separator", "-")
        )

    if data.get("providers") is not None:
        values["providers"] = [_resolve_provider(pid, source) for pid in data["providers"]]

    try:
        return BackendConfig.model_validate(values)
    except pydantic.ValidationError as e:
        raise ConfigurationError(
            f"Invalid backend config in {source}",
            {"path": source, "errors": [err["msg"] for err in e.errors()]},
        ) from e


def _resolve_provider(provider_id: Any, source: str) -> Any:
    from backplane.providers import resolve_provider

    provider = resolve_provider(str(provider_id))
    if provider is None:
        raise ConfigurationError(
            f'Unknown provider "{provider_id}"', {"path": source, "provider_id": provider_id}
        )
    return provider
