"""Fluent builder for typed backends."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

import structlog

from backplane.components import ComponentDefinition
from backplane.config import BackendConfig, NamingConvention, ResourceLimits
from backplane.core.errors import ComponentError
from backplane.providers import ResourceProvider
from backplane.scope import Scope
from backplane.typed import TypedBackend, define_backend

logger = structlog.get_logger()


class BackendBuilder:
    """
    Collects component definitions and configuration, then builds a
    TypedBackend.

    Example:
        backend = (
            BackendBuilder()
            .with_environment("prod")
            .with_tags({"team": "platform"})
            .add_component(user_api)
            .add_component(order_api)
            .build()
        )
    """

    def __init__(self, config: BackendConfig | None = None) -> None:
        self._config = config if config is not None else BackendConfig()
        self._components: Dict[str, ComponentDefinition] = {}

    @property
    def config(self) -> BackendConfig:
        return self._config

    def _update(self, **changes: Any) -> None:
        # Rebuild rather than copy so field validators run on the new values
        self._config = BackendConfig(**{**dict(self._config), **changes})

    # Components

    def add_component(self, definition: ComponentDefinition) -> BackendBuilder:
        component_id = getattr(definition, "component_id", None)
        if not component_id:
            raise ComponentError("Component must have a component_id")
        if component_id in self._components:
            raise ComponentError(
                f'Component with ID "{component_id}" has already been added to this builder',
                component_id,
            )
        self._components[component_id] = definition
        logger.debug(
            "builder_component_added",
            component_id=component_id,
            component_type=definition.component_type,
        )
        return self

    def add_components(self, definitions: Iterable[ComponentDefinition]) -> BackendBuilder:
        for definition in definitions:
            self.add_component(definition)
        return self

    @property
    def component_count(self) -> int:
        return len(self._components)

    @property
    def component_ids(self) -> List[str]:
        return list(self._components)

    def has_component(self, component_id: str) -> bool:
        return component_id in self._components

    def remove_component(self, component_id: str) -> bool:
        removed = self._components.pop(component_id, None) is not None
        if removed:
            logger.debug("builder_component_removed", component_id=component_id)
        return removed

    def clear_components(self) -> None:
        count = len(self._components)
        self._components.clear()
        logger.debug("builder_components_cleared", count=count)

    # Configuration

    def with_naming(self, convention: NamingConvention) -> BackendBuilder:
        self._update(naming=convention)
        return self

    def with_tags(self, tags: Mapping[str, str]) -> BackendBuilder:
        """Merge tags over any set earlier."""
        self._update(tags={**self._config.tags, **tags})
        logger.debug("builder_tags_added", count=len(tags))
        return self

    def with_provider(self, provider: ResourceProvider) -> BackendBuilder:
        self._update(providers=(*(self._config.providers or ()), provider))
        logger.debug("builder_provider_added", provider_id=provider.provider_id)
        return self

    def with_providers(self, providers: Iterable[ResourceProvider]) -> BackendBuilder:
        for provider in providers:
            self.with_provider(provider)
        return self

    def with_environment(self, environment: str) -> BackendBuilder:
        self._update(environment=environment)
        return self

    def with_location(self, location: str) -> BackendBuilder:
        self._update(location=location)
        return self

    def with_limits(self, limits: ResourceLimits | Mapping[str, Any]) -> BackendBuilder:
        if not isinstance(limits, ResourceLimits):
            limits = ResourceLimits.model_validate(dict(limits))
        self._update(limits=limits)
        return self

    # Building

    def build(self, backend_id: str | None = None) -> TypedBackend:
        if not self._components:
            raise ComponentError(
                "Cannot build backend with no components. "
                "Add at least one component using add_component()"
            )
        logger.info("building_backend", components=len(self._components))
        return define_backend(dict(self._components), self._config, backend_id=backend_id)

    def build_and_initialize(self, scope: Scope, backend_id: str | None = None) -> TypedBackend:
        backend = self.build(backend_id)
        backend.initialize(scope)
        return backend

    def reset(self) -> None:
        """Drop all components and configuration."""
        self.clear_components()
        self._config = BackendConfig()

    def clone(self) -> BackendBuilder:
        cloned = BackendBuilder(self._config)
        cloned._components = dict(self._components)
        return cloned

    def __repr__(self) -> str:
        return f"BackendBuilder(components={self.component_ids})"
