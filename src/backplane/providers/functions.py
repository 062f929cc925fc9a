"""
Function App provider.

Components that share a ``functions`` key are hosted in one Function App.
Their environment variables are namespaced by owning component so that
``UserApi`` asking for ``KEY`` becomes ``USER_API_KEY``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from backplane.core.errors import incompatible_configs_error, limit_exceeded_error
from backplane.merger import namespace_env_var
from backplane.models import ValidationResult
from backplane.providers.base import BaseProvider, ProviderContext, ProvisionedResource
from backplane.scope import Scope

MAX_FUNCTIONS_PER_APP = 200
MAX_ENVIRONMENT_VARIABLES = 1000

VALID_RUNTIMES = ("node", "python", "dotnet", "java", "powershell")

# Consumption < Elastic Premium < Premium V2 < Premium V3
SKU_PRIORITY = {
    "Y1": 1,
    "EP1": 2,
    "EP2": 3,
    "EP3": 4,
    "P1V2": 5,
    "P2V2": 6,
    "P3V2": 7,
    "P1V3": 8,
    "P2V3": 9,
    "P3V3": 10,
}

_VERSION_PATTERN = re.compile(r"^\d+(\.\d+)*$")

# Variables owned by these ids are not namespaced
_SHARED_OWNERS = ("shared", "unknown")


class EnvironmentVariable(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    value: str
    component_id: str | None = None


class FunctionsConfig(BaseModel):
    """Requirement config for a ``functions`` resource."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    runtime: str
    version: str | None = None
    sku: str | None = None
    always_on: bool | None = None
    environment_variables: Dict[str, EnvironmentVariable] | None = None
    extensions: tuple[str, ...] | None = None
    plan: Any = None
    storage_account: Any = None
    location: str | None = None

    @field_validator("environment_variables", mode="before")
    @classmethod
    def _coerce_plain_values(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: {"value": v} if isinstance(v, str) else v for k, v in value.items()}
        return value


def namespaced_key(key: str, variable: EnvironmentVariable) -> str:
    owner = variable.component_id or "shared"
    if owner in _SHARED_OWNERS:
        return key
    return namespace_env_var(owner, key)


def select_highest_sku(skus: Sequence[str]) -> str:
    """Highest-tier SKU; unknown SKUs rank lowest, ties keep the earliest."""
    highest = skus[0]
    for sku in skus[1:]:
        if SKU_PRIORITY.get(sku, 0) > SKU_PRIORITY.get(highest, 0):
            highest = sku
    return highest


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) if part.isdigit() else 0 for part in version.split("."))


def select_highest_version(versions: Sequence[str]) -> str:
    return max(versions, key=_version_key)


def merge_environment_variables(
    configs: Sequence[FunctionsConfig],
) -> Dict[str, EnvironmentVariable]:
    merged: Dict[str, EnvironmentVariable] = {}
    for config in configs:
        for key, variable in (config.environment_variables or {}).items():
            name = namespaced_key(key, variable)
            current = merged.get(name)
            if current is not None and current.value != variable.value:
                raise incompatible_configs_error(
                    "functions",
                    f"environment variable conflict for '{name}': "
                    f"'{current.value}' vs '{variable.value}'",
                )
            # Already namespaced; dropping the owner keeps a re-merge stable
            merged[name] = EnvironmentVariable(value=variable.value)

    if len(merged) > MAX_ENVIRONMENT_VARIABLES:
        raise limit_exceeded_error("functions", MAX_ENVIRONMENT_VARIABLES, len(merged))
    return merged


def merge_functions_configs(configs: Sequence[FunctionsConfig]) -> FunctionsConfig:
    """Fold compatible Function App configs into one."""
    base = configs[0]

    extensions = dict.fromkeys(e for c in configs for e in c.extensions or ())
    skus = [c.sku for c in configs if c.sku is not None]
    versions = [c.version for c in configs if c.version is not None]

    return FunctionsConfig(
        runtime=base.runtime,
        version=select_highest_version(versions) if len(versions) > 1 else base.version,
        sku=select_highest_sku(skus) if skus else None,
        always_on=True if any(c.always_on for c in configs) else base.always_on,
        environment_variables=merge_environment_variables(configs),
        extensions=tuple(extensions) or None,
        plan=base.plan,
        storage_account=base.storage_account,
        location=base.location,
    )


class FunctionsProvider(BaseProvider[FunctionsConfig]):
    """Provides shared Function Apps."""

    provider_id = "functions-provider"
    resource_type = "functions"
    supported_types = ("functions",)
    config_model = FunctionsConfig
    merge_limit = MAX_FUNCTIONS_PER_APP

    def can_merge(self, first: FunctionsConfig, second: FunctionsConfig) -> bool:
        if first.runtime != second.runtime:
            return False

        if first.version and second.version and first.version != second.version:
            if first.version.split(".")[0] != second.version.split(".")[0]:
                return False

        first_vars = {
            namespaced_key(k, v): v.value for k, v in (first.environment_variables or {}).items()
        }
        for key, variable in (second.environment_variables or {}).items():
            name = namespaced_key(key, variable)
            if name in first_vars and first_vars[name] != variable.value:
                return False
        return True

    def merge_configs(self, configs: Sequence[FunctionsConfig]) -> FunctionsConfig:
        return merge_functions_configs(configs)

    def dump_config(self, config: FunctionsConfig) -> dict[str, Any]:
        data = super().dump_config(config)
        # Plan and storage account are references to other resources; keep them as-is
        for name in ("plan", "storage_account"):
            value = getattr(config, name)
            if value is not None:
                data[name] = value
        return data

    def validate_config(self, config: FunctionsConfig) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if config.runtime not in VALID_RUNTIMES:
            errors.append(
                f"Invalid runtime '{config.runtime}'. Must be one of: {', '.join(VALID_RUNTIMES)}"
            )

        if config.version and not _VERSION_PATTERN.match(config.version):
            errors.append(f"Invalid version format '{config.version}'. Expected format: X.Y.Z")

        env_count = len(config.environment_variables or {})
        if env_count > MAX_ENVIRONMENT_VARIABLES:
            errors.append(
                f"Configuration specifies {env_count} environment variables, "
                f"exceeding limit of {MAX_ENVIRONMENT_VARIABLES}"
            )

        if not config.plan:
            errors.append("Function App requires an App Service Plan reference")
        if not config.storage_account:
            errors.append("Function App requires a Storage Account reference")

        if config.sku == "Y1" and config.always_on:
            warnings.append("always_on is not available on Consumption plan (Y1)")

        return ValidationResult.from_messages(errors, warnings)

    def provision(
        self, scope: Scope, name: str, config: FunctionsConfig, context: ProviderContext
    ) -> ProvisionedResource:
        return self.create_handle(scope, name, config, context)

    @staticmethod
    def app_settings(config: FunctionsConfig) -> dict[str, str]:
        """Flatten environment variables into name -> value app settings."""
        return {k: v.value for k, v in (config.environment_variables or {}).items()}

    @staticmethod
    def get_environment_variable_key(component_id: str, key: str) -> str:
        return namespaced_key(key, EnvironmentVariable(value="", component_id=component_id))
