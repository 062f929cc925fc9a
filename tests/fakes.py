"""Test doubles shared across the test suite."""

from __future__ import annotations

from typing import Any, List, Mapping, Sequence

from backplane.components import BaseComponent, ComponentDefinition
from backplane.core.errors import MergeError
from backplane.models import ResourceRequirement, ValidationResult
from backplane.providers.base import ProviderContext
from backplane.requirements import deep_merge_all
from backplane.scope import Scope


class MockComponent(BaseComponent):
    """Declares whatever requirements its config lists."""

    component_type = "mock"

    def get_requirements(self) -> List[ResourceRequirement]:
        return [
            r if isinstance(r, ResourceRequirement) else ResourceRequirement.from_dict(r)
            for r in self.config.get("requirements", ())
        ]

    @property
    def initialize_called(self) -> bool:
        return self.initialized


def requirement(
    resource_type: str = "cosmos",
    requirement_key: str = "shared",
    config: Mapping[str, Any] | None = None,
    priority: int | None = None,
) -> ResourceRequirement:
    return ResourceRequirement(resource_type, requirement_key, dict(config or {}), priority)


def mock_definition(component_id: str, *requirements: ResourceRequirement) -> ComponentDefinition:
    return ComponentDefinition(
        component_id, "mock", MockComponent, {"requirements": list(requirements)}
    )


class MockProvider:
    """Provider that deep-merges configs and counts every call."""

    def __init__(
        self,
        provider_id: str = "mock-provider",
        supported_types: Sequence[str] = ("cosmos",),
        fail_with: Exception | None = None,
        invalid: Sequence[str] = (),
    ) -> None:
        self.provider_id = provider_id
        self.supported_types = tuple(supported_types)
        self.fail_with = fail_with
        self.invalid = tuple(invalid)
        self.provide_calls = 0
        self.merge_calls = 0
        self.contexts: List[ProviderContext] = []

    def can_provide(self, requirement: ResourceRequirement) -> bool:
        return requirement.resource_type in self.supported_types

    def provide_resource(
        self, requirement: ResourceRequirement, scope: Scope, context: ProviderContext
    ) -> Any:
        self.provide_calls += 1
        self.contexts.append(context)
        if self.fail_with is not None:
            raise self.fail_with
        return {
            "key": requirement.resource_key,
            "config": dict(requirement.config),
            "scope": scope.create_child(requirement.resource_key.replace(":", "-")),
        }

    def merge_requirements(
        self, requirements: Sequence[ResourceRequirement]
    ) -> ResourceRequirement:
        if not requirements:
            raise MergeError("Cannot merge empty requirements list")
        if len(requirements) == 1:
            return requirements[0]
        self.merge_calls += 1
        return requirements[0].with_config(deep_merge_all([r.config for r in requirements]))

    def validate_merged(self, requirement: ResourceRequirement) -> ValidationResult:
        return ValidationResult.from_messages(list(self.invalid))
