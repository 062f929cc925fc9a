"""
Resource provider contract.

A provider is a stateless strategy that knows how to merge several
requirements for the same resource key into one, validate the merged
result, and turn it into a provisioned resource under a scope.

``BaseProvider`` implements the orchestration parts of the contract once.
Concrete providers supply a pydantic config model plus four hooks:
``can_merge``, ``merge_configs``, ``validate_config`` and ``provision``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from itertools import combinations
from typing import (
    Any,
    ClassVar,
    Generic,
    Mapping,
    Protocol,
    Sequence,
    TypeVar,
    runtime_checkable,
)

import pydantic
import structlog
from pydantic import BaseModel

from backplane.config.models import NamingConvention, ResourceLimits
from backplane.core.errors import (
    BackplaneError,
    MergeError,
    ProvisioningError,
    incompatible_configs_error,
    limit_exceeded_error,
    provisioning_failure_error,
)
from backplane.models import ResourceRequirement, ValidationResult
from backplane.requirements import effective_priority
from backplane.scope import Scope

logger = structlog.get_logger()

ConfigT = TypeVar("ConfigT")


@dataclass(frozen=True)
class ProviderContext:
    """Everything a provider may read while provisioning one resource."""

    backend_id: str
    naming: NamingConvention
    tags: Mapping[str, str]
    existing_resources: Mapping[str, Any]
    location: str | None = None
    environment: str | None = None
    limits: ResourceLimits = field(default_factory=ResourceLimits)


@dataclass(frozen=True)
class ProvisionedResource:
    """Handle returned by the built-in providers for a provisioned resource."""

    name: str
    resource_type: str
    config: Mapping[str, Any]
    scope: Scope
    tags: Mapping[str, str] = field(default_factory=dict)
    location: str | None = None
    environment: str | None = None


@runtime_checkable
class ResourceProvider(Protocol):
    """Contract the backend uses to merge and provision resources."""

    provider_id: str
    supported_types: Sequence[str]

    def can_provide(self, requirement: ResourceRequirement) -> bool:
        ...

    def provide_resource(
        self, requirement: ResourceRequirement, scope: Scope, context: ProviderContext
    ) -> Any:
        ...

    def merge_requirements(
        self, requirements: Sequence[ResourceRequirement]
    ) -> ResourceRequirement:
        """Merge a non-empty group; a single requirement is returned unchanged."""
        ...

    def validate_merged(self, requirement: ResourceRequirement) -> ValidationResult:
        ...


class BaseProvider(ABC, Generic[ConfigT]):
    """
    Shared merge/validate/provide logic for typed providers.

    Subclasses set ``provider_id``, ``resource_type``, ``supported_types`` and
    ``config_model``. ``merge_limit`` caps how many requirements may be folded
    into one resource.
    """

    provider_id: str
    resource_type: str
    supported_types: tuple[str, ...]
    config_model: ClassVar[type[BaseModel] | None] = None
    merge_limit: int | None = None

    # Hooks

    @abstractmethod
    def can_merge(self, first: ConfigT, second: ConfigT) -> bool:
        """Whether two configs can share one resource."""

    @abstractmethod
    def merge_configs(self, configs: Sequence[ConfigT]) -> ConfigT:
        """Pure merge of two or more compatible configs."""

    def validate_config(self, config: ConfigT) -> ValidationResult:
        return ValidationResult.ok()

    @abstractmethod
    def provision(
        self, scope: Scope, name: str, config: ConfigT, context: ProviderContext
    ) -> Any:
        """Create the resource under ``scope``."""

    # Contract

    def can_provide(self, requirement: ResourceRequirement) -> bool:
        return requirement.resource_type in self.supported_types

    def parse_config(self, config: Mapping[str, Any]) -> ConfigT:
        return self.config_model.model_validate(dict(config))  # type: ignore[return-value]

    def dump_config(self, config: ConfigT) -> dict[str, Any]:
        return config.model_dump(exclude_none=True)

    def merge_requirements(
        self, requirements: Sequence[ResourceRequirement]
    ) -> ResourceRequirement:
        if not requirements:
            raise MergeError(
                "Cannot merge empty requirements list", details={"provider_id": self.provider_id}
            )
        if len(requirements) == 1:
            return requirements[0]

        if self.merge_limit is not None and len(requirements) > self.merge_limit:
            raise limit_exceeded_error(self.resource_type, self.merge_limit, len(requirements))

        resource_type = requirements[0].resource_type
        for requirement in requirements:
            if requirement.resource_type != resource_type:
                raise incompatible_configs_error(
                    resource_type,
                    f"mixed resource types {resource_type} and {requirement.resource_type}",
                )

        merged = self.merge_group(requirements)
        validation = self.validate_config(merged)
        if not validation.valid:
            raise MergeError(
                f'Merged configuration for "{requirements[0].resource_key}" is invalid',
                [r.config for r in requirements],
                {"errors": list(validation.errors), "provider_id": self.provider_id},
            )

        first_requirement = requirements[0]
        return ResourceRequirement(
            resource_type=first_requirement.resource_type,
            requirement_key=first_requirement.requirement_key,
            config=self.dump_config(merged),
            priority=max(effective_priority(r) for r in requirements),
            metadata=first_requirement.metadata,
        )

    def merge_group(self, requirements: Sequence[ResourceRequirement]) -> ConfigT:
        """Parse each config, check pairwise compatibility, then merge."""
        configs = [self._parse_for_merge(r) for r in requirements]
        for (i, first), (j, second) in combinations(enumerate(configs), 2):
            if not self.can_merge(first, second):
                raise incompatible_configs_error(
                    requirements[0].resource_type,
                    f"requirements {i} and {j} are incompatible",
                    [requirements[i].config, requirements[j].config],
                )
        return self.merge_configs(configs)

    def validate_merged(self, requirement: ResourceRequirement) -> ValidationResult:
        try:
            config = self.parse_config(requirement.config)
        except pydantic.ValidationError as e:
            return ValidationResult.failed(_pydantic_messages(e))
        return self.validate_config(config)

    def provide_resource(
        self, requirement: ResourceRequirement, scope: Scope, context: ProviderContext
    ) -> Any:
        existing = context.existing_resources.get(requirement.resource_key)
        if existing is not None:
            return existing

        validation = self.validate_merged(requirement)
        if not validation.valid:
            raise ProvisioningError(
                f'Configuration validation failed for "{requirement.resource_key}"',
                requirement.resource_type,
                requirement.resource_key,
                {"errors": list(validation.errors)},
            )
        for warning in validation.warnings:
            logger.warning(
                "provider_config_warning",
                provider_id=self.provider_id,
                resource_key=requirement.resource_key,
                warning=warning,
            )

        config = self.parse_config(requirement.config)
        name = context.naming.format_resource_name(
            requirement.resource_type, context.backend_id, requirement.requirement_key
        )
        try:
            resource = self.provision(scope, name, config, context)
        except BackplaneError:
            raise
        except Exception as e:
            raise provisioning_failure_error(
                requirement.resource_type, requirement.requirement_key, str(e)
            ) from e

        logger.debug(
            "resource_provisioned",
            provider_id=self.provider_id,
            resource_key=requirement.resource_key,
            name=name,
        )
        return resource

    # Helpers for subclasses

    def create_handle(
        self, scope: Scope, name: str, config: ConfigT, context: ProviderContext
    ) -> ProvisionedResource:
        """Attach a child scope for the resource and describe it."""
        dumped = self.dump_config(config)
        return ProvisionedResource(
            name=name,
            resource_type=self.resource_type,
            config=dumped,
            scope=scope.create_child(name),
            tags=dict(context.tags),
            location=dumped.get("location") or context.location,
            environment=context.environment,
        )

    def _parse_for_merge(self, requirement: ResourceRequirement) -> ConfigT:
        try:
            return self.parse_config(requirement.config)
        except pydantic.ValidationError as e:
            raise MergeError(
                f'Invalid {self.resource_type} config for "{requirement.resource_key}"',
                [requirement.config],
                {"errors": _pydantic_messages(e), "provider_id": self.provider_id},
            ) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.provider_id!r})"


def _pydantic_messages(error: pydantic.ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
        for err in error.errors()
    ]
