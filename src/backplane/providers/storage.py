"""
Storage account provider.

Blob containers requested by different components are prefixed with the
owning component id (``UserApi`` + ``uploads`` -> ``user-api-uploads``) so
they can live side by side in one shared account.
"""

from __future__ import annotations

import re
from typing import Dict, Literal, Sequence

from pydantic import BaseModel, ConfigDict

from backplane.core.errors import limit_exceeded_error
from backplane.models import ValidationResult
from backplane.providers.base import BaseProvider, ProviderContext, ProvisionedResource
from backplane.scope import Scope

MAX_CONTAINERS_PER_ACCOUNT = 250

SKU_PRIORITY = {
    "Standard_LRS": 1,
    "Standard_GRS": 2,
    "Standard_RAGRS": 3,
    "Standard_ZRS": 4,
    "Premium_LRS": 5,
    "Premium_ZRS": 6,
}

PublicAccess = Literal["None", "Blob", "Container"]

_CONTAINER_NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")


class StorageContainer(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    component_id: str | None = None
    public_access: PublicAccess | None = None


class StorageConfig(BaseModel):
    """Requirement config for a ``storage`` resource."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sku: str | None = None
    access_tier: Literal["Hot", "Cool"] | None = None
    containers: tuple[StorageContainer, ...] | None = None
    enable_blob_public_access: bool | None = None
    location: str | None = None


def prefix_container_name(name: str, component_id: str | None) -> str:
    if not component_id or component_id == "shared":
        return name
    prefix = re.sub(r"([A-Z])", r"-\1", component_id).lower().removeprefix("-")
    if name.startswith(f"{prefix}-"):
        return name
    return f"{prefix}-{name}"


def _prefixed_names(config: StorageConfig) -> set[str]:
    return {prefix_container_name(c.name, c.component_id) for c in config.containers or ()}


def _most_restrictive(
    first: PublicAccess | None, second: PublicAccess | None
) -> PublicAccess | None:
    if "None" in (first, second):
        return "None"
    if "Blob" in (first, second):
        return "Blob"
    return second


def select_highest_sku(skus: Sequence[str]) -> str:
    highest = skus[0]
    for sku in skus[1:]:
        if SKU_PRIORITY.get(sku, 0) > SKU_PRIORITY.get(highest, 0):
            highest = sku
    return highest


def merge_containers(configs: Sequence[StorageConfig]) -> tuple[StorageContainer, ...]:
    by_name: Dict[str, StorageContainer] = {}
    for config in configs:
        for container in config.containers or ():
            name = prefix_container_name(container.name, container.component_id)
            current = by_name.get(name)
            public_access = container.public_access
            if current is not None:
                public_access = _most_restrictive(current.public_access, public_access)
            by_name[name] = StorageContainer(
                name=name, component_id=container.component_id, public_access=public_access
            )

    if len(by_name) > MAX_CONTAINERS_PER_ACCOUNT:
        raise limit_exceeded_error("storage", MAX_CONTAINERS_PER_ACCOUNT, len(by_name))
    return tuple(by_name.values())


def merge_storage_configs(configs: Sequence[StorageConfig]) -> StorageConfig:
    """Fold compatible storage configs into one account config."""
    base = configs[0]

    skus = [c.sku for c in configs if c.sku is not None]
    tiers = [c.access_tier for c in configs if c.access_tier is not None]

    if tiers:
        access_tier = "Hot" if "Hot" in tiers else "Cool"
    else:
        access_tier = None

    if any(c.enable_blob_public_access is False for c in configs):
        enable_blob_public_access = False
    else:
        enable_blob_public_access = base.enable_blob_public_access

    return StorageConfig(
        sku=select_highest_sku(skus) if skus else None,
        access_tier=access_tier,
        containers=merge_containers(configs),
        enable_blob_public_access=enable_blob_public_access,
        location=base.location,
    )


class StorageProvider(BaseProvider[StorageConfig]):
    """Provides shared storage accounts."""

    provider_id = "storage-provider"
    resource_type = "storage"
    supported_types = ("storage",)
    config_model = StorageConfig
    merge_limit = MAX_CONTAINERS_PER_ACCOUNT

    def can_merge(self, first: StorageConfig, second: StorageConfig) -> bool:
        # SKU, tier and public access always reconcile; only container names can clash
        return not (_prefixed_names(first) & _prefixed_names(second))

    def merge_configs(self, configs: Sequence[StorageConfig]) -> StorageConfig:
        return merge_storage_configs(configs)

    def validate_config(self, config: StorageConfig) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        containers = config.containers or ()
        if len(containers) > MAX_CONTAINERS_PER_ACCOUNT:
            errors.append(
                f"Configuration specifies {len(containers)} containers, "
                f"exceeding limit of {MAX_CONTAINERS_PER_ACCOUNT}"
            )

        for container in containers:
            name = container.name
            if not name:
                errors.append("Container name cannot be empty")
                continue
            if not 3 <= len(name) <= 63:
                errors.append(f"Container name '{name}' must be 3-63 characters long")
            if not _CONTAINER_NAME_PATTERN.match(name):
                errors.append(
                    f"Container name '{name}' must contain only lowercase letters, "
                    "numbers, and hyphens"
                )
            if name.startswith("-") or name.endswith("-"):
                errors.append(f"Container name '{name}' cannot start or end with a hyphen")
            if "--" in name:
                errors.append(f"Container name '{name}' cannot contain consecutive hyphens")

        if config.enable_blob_public_access:
            warnings.append(
                "Blob public access is enabled. Ensure this is intentional for security."
            )

        return ValidationResult.from_messages(errors, warnings)

    def provision(
        self, scope: Scope, name: str, config: StorageConfig, context: ProviderContext
    ) -> ProvisionedResource:
        return self.create_handle(scope, name, config, context)

    @staticmethod
    def get_component_containers(config: StorageConfig, component_id: str) -> list[str]:
        return [c.name for c in config.containers or () if c.component_id == component_id]
