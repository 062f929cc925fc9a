"""
Component contract.

A component declares the shared resources it needs and, once the backend
has provisioned them, initializes itself against them. Components are
built through a factory that the backend calls twice: once to harvest
requirements, once for real. Factories must therefore be free of side
effects outside the scope they are given.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Protocol, Sequence, runtime_checkable

from backplane.core.errors import ComponentError
from backplane.models import DEFAULT_REQUIREMENT_KEY, ResourceRequirement, ValidationResult
from backplane.requirements import format_resource_key, validate_requirement
from backplane.scope import (
    BackendContext,
    ConstructScope,
    Scope,
    is_backend_managed,
    mark_backend_managed,
)

EMPTY_RESOURCES: Mapping[str, Any] = MappingProxyType({})


@runtime_checkable
class Component(Protocol):
    """A live component instance."""

    component_id: str
    component_type: str
    config: Mapping[str, Any]

    def get_requirements(self) -> Sequence[ResourceRequirement]:
        ...

    def initialize(self, resources: Mapping[str, Any], scope: Scope) -> None:
        ...

    def validate_resources(self, resources: Mapping[str, Any]) -> ValidationResult:
        ...

    def get_outputs(self) -> Mapping[str, Any]:
        ...


ComponentFactory = Callable[[Scope, str, Mapping[str, Any], Mapping[str, Any]], Component]


@dataclass(frozen=True)
class ComponentDefinition:
    """How to build one component: its id, type, config and factory."""

    component_id: str
    component_type: str
    factory: ComponentFactory
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.component_id:
            raise ComponentError("Component definition must have a component_id")
        if not self.component_type:
            raise ComponentError(
                f'Component "{self.component_id}" must have a component_type', self.component_id
            )
        if not callable(self.factory):
            raise ComponentError(
                f'Component "{self.component_id}" factory must be callable', self.component_id
            )

    def create(self, scope: Scope, resources: Mapping[str, Any]) -> Component:
        """Run the factory and check it produced a component."""
        component = self.factory(scope, self.component_id, self.config, resources)
        if not isinstance(component, Component):
            raise ComponentError(
                f'Factory for component "{self.component_id}" returned '
                f"{type(component).__name__}, not a component",
                self.component_id,
            )
        return component


class BaseComponent(ABC):
    """
    Convenience base for components.

    Subclasses set ``component_type`` and implement ``get_requirements``.
    The factory signature matches the constructor, so ``MyComponent`` itself
    can be passed as a ComponentDefinition factory.
    """

    component_type: str = "component"

    def __init__(
        self,
        scope: Scope,
        component_id: str,
        config: Mapping[str, Any],
        resources: Mapping[str, Any],
    ) -> None:
        self.scope = scope
        self.component_id = component_id
        self.config = config
        self.resources = resources
        self.backend_managed = is_backend_managed(scope)
        self.initialized = False

    @abstractmethod
    def get_requirements(self) -> Sequence[ResourceRequirement]:
        ...

    def initialize(self, resources: Mapping[str, Any], scope: Scope) -> None:
        self.resources = resources
        self.initialized = True

    def validate_resources(self, resources: Mapping[str, Any]) -> ValidationResult:
        """Every declared requirement must have a resource."""
        missing = [
            r.resource_key for r in self.get_requirements() if r.resource_key not in resources
        ]
        return ValidationResult.from_messages([f"Missing resource {key}" for key in missing])

    def get_outputs(self) -> Mapping[str, Any]:
        return {
            "component_id": self.component_id,
            "component_type": self.component_type,
            "resources": sorted(self.resources),
        }

    def resource(self, resource_type: str, requirement_key: str = DEFAULT_REQUIREMENT_KEY) -> Any:
        return self.resources.get(format_resource_key(resource_type, requirement_key))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.component_id!r})"


def assert_factory_is_pure(definition: ComponentDefinition) -> None:
    """
    Check a factory can safely be called twice.

    Runs the factory twice, each time on a fresh throwaway scope with no
    resources, and raises ComponentError if it fails, returns something
    other than a component, or declares different requirements each time.
    """
    arena = ConstructScope("factory-check")
    declared: list[list[Dict[str, Any]]] = []

    for attempt in (1, 2):
        scope = arena.create_child(f"{definition.component_id}-{attempt}")
        mark_backend_managed(scope, BackendContext(backend_id=arena.name))
        try:
            component = definition.create(scope, EMPTY_RESOURCES)
            requirements = [validate_requirement(r) for r in component.get_requirements()]
        except ComponentError:
            raise
        except Exception as e:
            raise ComponentError(
                f'Factory for component "{definition.component_id}" failed: {e}',
                definition.component_id,
            ) from e
        declared.append(
            [
                {k: v for k, v in r.to_dict().items() if k != "metadata"}
                for r in requirements
            ]
        )

    if declared[0] != declared[1]:
        raise ComponentError(
            f'Factory for component "{definition.component_id}" declared different '
            "requirements on repeated calls",
            definition.component_id,
            {"first": declared[0], "second": declared[1]},
        )
