"""
Cosmos DB account provider.

Several components asking for the same ``cosmos`` key share one account:
their databases are merged by name and containers by name within each
database. Accounts hold at most 25 databases and each database at most 100
containers.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Sequence

from pydantic import BaseModel, ConfigDict

from backplane.core.errors import incompatible_configs_error, limit_exceeded_error
from backplane.models import ValidationResult
from backplane.providers.base import BaseProvider, ProviderContext, ProvisionedResource
from backplane.scope import Scope

MAX_DATABASES_PER_ACCOUNT = 25
MAX_CONTAINERS_PER_DATABASE = 100

PublicNetworkAccess = Literal["Enabled", "Disabled", "SecuredByPerimeter"]

# Most restrictive first
_ACCESS_ORDER: tuple[PublicNetworkAccess, ...] = ("Disabled", "SecuredByPerimeter", "Enabled")


class CosmosContainer(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    partition_key: str
    unique_keys: tuple[str, ...] | None = None
    ttl: int | None = None
    indexing_policy: Dict[str, Any] | None = None


class CosmosDatabase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    containers: tuple[CosmosContainer, ...] = ()


class CosmosConfig(BaseModel):
    """Requirement config for a ``cosmos`` resource."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    consistency: str | None = None
    enable_serverless: bool | None = None
    enable_multi_region: bool | None = None
    enable_free_tier: bool | None = None
    public_network_access: PublicNetworkAccess | None = None
    kind: str | None = None
    capabilities: tuple[str, ...] | None = None
    databases: tuple[CosmosDatabase, ...] | None = None
    location: str | None = None
    additional_locations: tuple[str, ...] | None = None


def _differs(first: Any, second: Any) -> bool:
    return first is not None and second is not None and first != second


def _union(groups: Sequence[Sequence[str] | None]) -> tuple[str, ...] | None:
    merged = dict.fromkeys(item for group in groups if group for item in group)
    return tuple(merged) or None


def merge_containers(
    existing: Sequence[CosmosContainer], incoming: Sequence[CosmosContainer]
) -> tuple[CosmosContainer, ...]:
    """Merge containers by name; conflicting partition keys cannot share a container."""
    by_name: Dict[str, CosmosContainer] = {c.name: c for c in existing}

    for container in incoming:
        current = by_name.get(container.name)
        if current is None:
            by_name[container.name] = container
            continue

        if current.partition_key != container.partition_key:
            raise incompatible_configs_error(
                "cosmos",
                f"container '{container.name}' has conflicting partition keys: "
                f"'{current.partition_key}' vs '{container.partition_key}'",
            )

        if current.ttl is not None and container.ttl is not None:
            ttl = min(current.ttl, container.ttl)
        else:
            ttl = current.ttl if current.ttl is not None else container.ttl

        by_name[container.name] = CosmosContainer(
            name=container.name,
            partition_key=current.partition_key,
            unique_keys=_union([current.unique_keys, container.unique_keys]),
            ttl=ttl,
            indexing_policy=container.indexing_policy or current.indexing_policy,
        )

    if len(by_name) > MAX_CONTAINERS_PER_DATABASE:
        raise limit_exceeded_error("cosmos", MAX_CONTAINERS_PER_DATABASE, len(by_name))
    return tuple(by_name.values())


def merge_databases(configs: Sequence[CosmosConfig]) -> tuple[CosmosDatabase, ...] | None:
    if all(c.databases is None for c in configs):
        return None

    by_name: Dict[str, CosmosDatabase] = {}
    for config in configs:
        for database in config.databases or ():
            current = by_name.get(database.name)
            if current is None:
                by_name[database.name] = database
            else:
                by_name[database.name] = CosmosDatabase(
                    name=database.name,
                    containers=merge_containers(current.containers, database.containers),
                )

    if len(by_name) > MAX_DATABASES_PER_ACCOUNT:
        raise limit_exceeded_error("cosmos", MAX_DATABASES_PER_ACCOUNT, len(by_name))
    return tuple(by_name.values())


def merge_cosmos_configs(configs: Sequence[CosmosConfig]) -> CosmosConfig:
    """Fold compatible Cosmos configs into one account config."""
    base = configs[0]

    access_levels = {c.public_network_access for c in configs if c.public_network_access}
    public_network_access = next((a for a in _ACCESS_ORDER if a in access_levels), None)

    return CosmosConfig(
        consistency=base.consistency,
        enable_serverless=base.enable_serverless,
        enable_multi_region=True
        if any(c.enable_multi_region for c in configs)
        else base.enable_multi_region,
        enable_free_tier=True
        if any(c.enable_free_tier for c in configs)
        else base.enable_free_tier,
        public_network_access=public_network_access,
        kind=base.kind,
        capabilities=_union([c.capabilities for c in configs]),
        databases=merge_databases(configs),
        location=base.location,
        additional_locations=_union([c.additional_locations for c in configs]),
    )


class CosmosProvider(BaseProvider[CosmosConfig]):
    """Provides shared Cosmos DB accounts."""

    provider_id = "cosmos-provider"
    resource_type = "cosmos"
    supported_types = ("cosmos",)
    config_model = CosmosConfig
    merge_limit = MAX_DATABASES_PER_ACCOUNT

    def can_merge(self, first: CosmosConfig, second: CosmosConfig) -> bool:
        if _differs(first.consistency, second.consistency):
            return False
        if first.enable_serverless != second.enable_serverless:
            return False
        if _differs(first.kind, second.kind):
            return False
        if _differs(first.enable_multi_region, second.enable_multi_region):
            return False
        return True

    def merge_configs(self, configs: Sequence[CosmosConfig]) -> CosmosConfig:
        return merge_cosmos_configs(configs)

    def validate_config(self, config: CosmosConfig) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if config.enable_serverless:
            if config.enable_multi_region:
                errors.append("Serverless accounts do not support multi-region configuration")
            if config.enable_free_tier:
                warnings.append("Free tier is not applicable to serverless accounts")

        if config.enable_free_tier:
            warnings.append(
                "Only one free tier Cosmos DB account is allowed per Azure subscription"
            )

        databases = config.databases or ()
        if len(databases) > MAX_DATABASES_PER_ACCOUNT:
            errors.append(
                f"Configuration specifies {len(databases)} databases, "
                f"exceeding limit of {MAX_DATABASES_PER_ACCOUNT}"
            )

        for database in databases:
            if not database.name:
                errors.append("Database name cannot be empty")
            if len(database.containers) > MAX_CONTAINERS_PER_DATABASE:
                errors.append(
                    f"Database '{database.name}' specifies {len(database.containers)} "
                    f"containers, exceeding limit of {MAX_CONTAINERS_PER_DATABASE}"
                )
            for container in database.containers:
                if not container.name:
                    errors.append(f"Container name cannot be empty in database '{database.name}'")
                if not container.partition_key:
                    errors.append(
                        f"Container '{container.name}' in database '{database.name}' "
                        "must specify a partition key"
                    )
                elif not container.partition_key.startswith("/"):
                    errors.append(
                        f"Partition key '{container.partition_key}' for container "
                        f"'{container.name}' must start with '/'"
                    )

        return ValidationResult.from_messages(errors, warnings)

    def provision(
        self, scope: Scope, name: str, config: CosmosConfig, context: ProviderContext
    ) -> ProvisionedResource:
        return self.create_handle(scope, name, config, context)

    @staticmethod
    def get_databases(config: CosmosConfig) -> tuple[CosmosDatabase, ...]:
        return config.databases or ()

    @staticmethod
    def get_containers(
        config: CosmosConfig, database_name: str
    ) -> tuple[CosmosContainer, ...] | None:
        for database in config.databases or ():
            if database.name == database_name:
                return database.containers
        return None
