"""
Declarative façade over Backend.

``define_backend`` takes a mapping of names to component definitions and
returns a TypedBackend whose ``components`` are keyed by the same names.
Given only a BackendConfig it returns a BackendBuilder instead.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, overload

import structlog

from backplane.backend import Backend, BackendState
from backplane.components import Component, ComponentDefinition
from backplane.config import BackendConfig
from backplane.core.errors import ComponentError
from backplane.models import DEFAULT_REQUIREMENT_KEY, ValidationResult
from backplane.providers import default_providers
from backplane.results import BackendPlan, InitializeResult
from backplane.scope import Scope

if TYPE_CHECKING:
    from backplane.builder import BackendBuilder

logger = structlog.get_logger()


def default_backend_id(config: BackendConfig) -> str:
    return f"Backend-{config.environment}" if config.environment else "Backend"


class TypedBackend:
    """Backend wrapper that exposes components under the caller's names."""

    def __init__(
        self,
        backend_id: str,
        components: Mapping[str, ComponentDefinition],
        config: BackendConfig | None = None,
    ) -> None:
        self._backend = Backend(backend_id, config)
        self._definitions = dict(components)
        self._components: Mapping[str, Component] | None = None

        for name, definition in self._definitions.items():
            logger.debug(
                "registering_component",
                name=name,
                component_id=definition.component_id,
                component_type=definition.component_type,
            )
            self._backend.add_component(definition)

        logger.info(
            "typed_backend_created", backend_id=backend_id, components=len(self._definitions)
        )

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def backend_id(self) -> str:
        return self._backend.backend_id

    @property
    def config(self) -> BackendConfig:
        return self._backend.config

    @property
    def state(self) -> BackendState:
        return self._backend.state

    @property
    def is_initialized(self) -> bool:
        return self._backend.is_initialized

    @property
    def resources(self) -> Mapping[str, Any]:
        return self._backend.resources

    @property
    def components(self) -> Mapping[str, Component]:
        """Initialized components keyed by the names they were defined under."""
        if not self._backend.is_initialized:
            raise ComponentError(
                "Cannot access components before backend initialization. "
                "Call initialize() first.",
                details={"backend_id": self.backend_id},
            )
        if self._components is None:
            resolved = {}
            for name, definition in self._definitions.items():
                component = self._backend.get_component(definition.component_id)
                if component is not None:
                    resolved[name] = component
            self._components = MappingProxyType(resolved)
        return self._components

    def add_component(self, definition: ComponentDefinition, name: str | None = None) -> None:
        name = name or definition.component_id
        existing = self._definitions.get(name)
        if existing is not None:
            raise ComponentError(
                f'Component name "{name}" is already used by "{existing.component_id}"',
                definition.component_id,
                {"name": name},
            )
        self._backend.add_component(definition)
        self._definitions[name] = definition

    def initialize(self, scope: Scope) -> InitializeResult:
        return self._backend.initialize(scope)

    def get_resource(self, resource_type: str, key: str = DEFAULT_REQUIREMENT_KEY) -> Any:
        return self._backend.get_resource(resource_type, key)

    def get_component(self, component_id: str) -> Component | None:
        return self._backend.get_component(component_id)

    def validate(self) -> ValidationResult:
        return self._backend.validate()

    def plan(self) -> BackendPlan:
        return self._backend.plan()

    def __repr__(self) -> str:
        return f"TypedBackend({self.backend_id!r}, components={list(self._definitions)})"


@overload
def define_backend(components: BackendConfig) -> BackendBuilder:
    ...


@overload
def define_backend(
    components: Mapping[str, ComponentDefinition],
    config: BackendConfig | None = None,
    *,
    backend_id: str | None = None,
) -> TypedBackend:
    ...


def define_backend(
    components: Mapping[str, ComponentDefinition] | BackendConfig,
    config: BackendConfig | None = None,
    *,
    backend_id: str | None = None,
) -> TypedBackend | BackendBuilder:
    """
    Define a backend from a mapping of named component definitions.

    The built-in providers are installed when the config lists none. The
    backend id defaults to ``Backend`` or ``Backend-<environment>``.

    Example:
        backend = define_backend(
            {"users": CrudApi.define("UserApi", ...), "orders": ...},
            BackendConfig(environment="prod"),
        )
        backend.initialize(scope)
        backend.components["users"]
    """
    if isinstance(components, BackendConfig):
        from backplane.builder import BackendBuilder

        logger.debug("creating_backend_builder")
        return BackendBuilder(components)

    if not isinstance(components, Mapping):
        raise ComponentError("Components must be a mapping of names to component definitions")
    if not components:
        raise ComponentError("Backend must have at least one component")

    backend_config = config if config is not None else BackendConfig()
    if backend_config.providers is None:
        backend_config = backend_config.with_overrides(providers=tuple(default_providers()))
        logger.debug("registered_default_providers", backend_id=backend_id)

    return TypedBackend(
        backend_id or default_backend_id(backend_config), components, backend_config
    )
