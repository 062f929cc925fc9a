"""Tests for backend configuration models, settings and YAML loading."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest
from backplane.config import (
    BackendConfig,
    DefaultNamingConvention,
    ResourceLimits,
    get_config_path,
    get_settings,
    load_backend_config,
    parse_backend_config,
)
from backplane.core.errors import ConfigurationError
from backplane.providers import CosmosProvider, StorageProvider, register_global_provider
from fakes import MockProvider

# -------------------------------------------------------------------------
# Models
# -------------------------------------------------------------------------


class TestNamingConvention:
    def test_resource_names(self) -> None:
        naming = DefaultNamingConvention()

        assert naming.format_resource_name("cosmos", "MyApp", "shared") == "cosmos-myapp-shared"
        assert naming.format_resource_name("cosmos", "MyApp") == "cosmos-myapp"

    def test_resource_group_names(self) -> None:
        naming = DefaultNamingConvention()

        assert naming.format_resource_group_name("MyApp", "prod") == "rg-myapp-prod"
        assert naming.format_resource_group_name("MyApp") == "rg-myapp"

    def test_prefix_and_separator(self) -> None:
        naming = DefaultNamingConvention(prefix="Acme", separator="_")

        assert naming.format_resource_name("storage", "Shop", "files") == "acme_storage_shop_files"


class TestBackendConfig:
    def test_defaults(self) -> None:
        config = BackendConfig()

        assert config.environment is None
        assert config.tags == {}
        assert config.providers is None
        assert isinstance(config.naming_convention(), DefaultNamingConvention)

    def test_is_frozen(self) -> None:
        config = BackendConfig(environment="dev")

        with pytest.raises(pydantic.ValidationError):
            config.environment = "prod"  # type: ignore[misc]

    def test_rejects_unknown_fields(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            BackendConfig(monitoring=True)  # type: ignore[call-arg]

    def test_naming_must_implement_protocol(self) -> None:
        with pytest.raises(pydantic.ValidationError, match="format_resource_name"):
            BackendConfig(naming="kebab")

    def test_with_overrides(self) -> None:
        config = BackendConfig(environment="dev", tags={"team": "core"})

        prod = config.with_overrides(environment="prod")

        assert prod.environment == "prod"
        assert prod.tags == {"team": "core"}
        assert config.environment == "dev"

    def test_providers_become_tuple(self) -> None:
        provider = MockProvider()
        assert BackendConfig(providers=[provider]).providers == (provider,)

    def test_limits(self) -> None:
        limits = ResourceLimits(max_cosmos_accounts=2, max_storage_accounts=1)

        assert limits.account_limit("cosmos") == 2
        assert limits.account_limit("storage") == 1
        assert limits.account_limit("functions") is None
        assert limits.account_limit("redis") is None

    def test_negative_limits_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            ResourceLimits(max_cosmos_accounts=-1)


class TestSettings:
    def test_defaults(self) -> None:
        settings = get_settings()

        assert settings.default_environment == "dev"
        assert settings.default_location == "eastus"
        assert settings.log_level == "INFO"

    def test_environment_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("BACKPLANE_DEFAULT_ENVIRONMENT", "staging")
        get_settings.cache_clear()

        assert get_settings().default_environment == "staging"


# -------------------------------------------------------------------------
# YAML loading
# -------------------------------------------------------------------------


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "backend.yaml"
    path.write_text(text)
    return path


class TestLoadBackendConfig:
    def test_full_file(self, tmp_path) -> None:
        path = write_config(
            tmp_path,
            """
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
""",
        )

        config = load_backend_config(path)

        assert config.environment == "prod"
        assert config.location == "westeurope"
        assert config.tags == {"team": "platform"}
        assert config.limits.max_cosmos_accounts == 1
        assert config.naming_convention().format_resource_name("cosmos", "Shop") == (
            "acme-cosmos-shop"
        )
        assert [type(p) for p in config.providers] == [CosmosProvider, StorageProvider]

    def test_empty_file_gives_defaults(self, tmp_path) -> None:
        assert load_backend_config(write_config(tmp_path, "")) == BackendConfig()

    def test_global_registry_providers_resolve_first(self, tmp_path) -> None:
        custom = MockProvider("redis-provider", ("redis",))
        register_global_provider(custom)
        path = write_config(tmp_path, "providers:\n  - redis-provider\n")

        assert load_backend_config(path).providers == (custom,)

    def test_unknown_provider(self, tmp_path) -> None:
        path = write_config(tmp_path, "providers:\n  - nope-provider\n")

        with pytest.raises(ConfigurationError, match="nope-provider"):
            load_backend_config(path)

    def test_unknown_keys(self, tmp_path) -> None:
        path = write_config(tmp_path, "environment: dev\nmonitoring: true\n")

        with pytest.raises(ConfigurationError, match="monitoring"):
            load_backend_config(path)

    def test_invalid_values(self, tmp_path) -> None:
        path = write_config(tmp_path, "limits:\n  max_cosmos_accounts: -3\n")

        with pytest.raises(ConfigurationError, match="Invalid backend config") as exc_info:
            load_backend_config(path)

        assert exc_info.value.details["errors"]

    def test_not_a_mapping(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_backend_config(write_config(tmp_path, "- one\n- two\n"))

    def test_malformed_yaml(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Failed to read"):
            load_backend_config(write_config(tmp_path, "tags: [unclosed\n"))

    def test_missing_explicit_path(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_backend_config(tmp_path / "missing.yaml")

    def test_defaults_when_nothing_found(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)

        assert get_config_path() is None
        assert load_backend_config() == BackendConfig()

    def test_finds_file_in_working_directory(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".backplane").mkdir()
        (tmp_path / ".backplane" / "backend.yaml").write_text("environment: test\n")

        assert load_backend_config().environment == "test"

    def test_config_path_setting(self, tmp_path, monkeypatch) -> None:
        path = write_config(tmp_path, "location: japaneast\n")
        monkeypatch.setenv("BACKPLANE_CONFIG_PATH", str(path))
        get_settings.cache_clear()

        assert get_config_path() == path
        assert load_backend_config().location == "japaneast"


class TestParseBackendConfig:
    def test_naming_must_be_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="naming"):
            parse_backend_config({"naming": "acme"})

    def test_separator(self) -> None:
        config = parse_backend_config({"naming": {"separator": "_"}})

        assert config.naming_convention().format_resource_group_name("Shop") == "rg_shop"
