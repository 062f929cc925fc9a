"""
Backend orchestrator.

Components are registered as definitions while the backend is collecting.
``initialize`` then runs five phases in order:

1. collect: build a temporary instance of each component in a throwaway
   scope and ask it for its requirements
2. validate: every requirement type needs a provider, and per-requirement
   validators must pass
3. merge: requirements sharing a resource key are merged by their provider
4. provision: each merged requirement is provisioned exactly once
5. initialize-components: each component is built for real against the
   frozen resource map

Any failure is re-raised as InitializationError naming the phase. Resources
and components are only published once every phase has succeeded.
"""

from __future__ import annotations

import time
from dataclasses import replace
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, TypeVar

import structlog

from backplane.components import EMPTY_RESOURCES, Component, ComponentDefinition
from backplane.config import BackendConfig, get_settings
from backplane.core.errors import (
    BackplaneError,
    ComponentError,
    ConfigurationError,
    InitializationError,
    MergeError,
    ProviderError,
    ProvisioningError,
    RequirementError,
    duplicate_component_error,
    initialization_failure_error,
    limit_exceeded_error,
    provisioning_failure_error,
    validation_failure_error,
)
from backplane.models import (
    DEFAULT_REQUIREMENT_KEY,
    RequirementMetadata,
    ResourceRequirement,
    ValidationContext,
    ValidationResult,
)
from backplane.providers.base import ProviderContext
from backplane.providers.registry import ProviderRegistry
from backplane.requirements import group_by_resource_key, validate_requirement
from backplane.results import BackendPlan, InitializeResult, PlanCollector
from backplane.scope import BackendContext, ConstructScope, Scope, mark_backend_managed

logger = structlog.get_logger()

T = TypeVar("T")

PHASE_COLLECT = "collect"
PHASE_VALIDATE = "validate"
PHASE_MERGE = "merge"
PHASE_PROVISION = "provision"
PHASE_INITIALIZE_COMPONENTS = "initialize-components"

NOT_INITIALIZED_MESSAGE = "Backend has not been initialized"


class BackendState(StrEnum):
    """Lifecycle of a backend. Transitions only move forward."""

    COLLECTING = "collecting"
    INITIALIZED = "initialized"
    FAILED = "failed"


class Backend:
    """
    Orchestrates component registration, resource provisioning and
    initialization.

    Providers listed in ``config.providers`` are registered up front; more
    can be added through ``provider_registry`` before ``initialize``.

    Example:
        backend = Backend("MyBackend", BackendConfig(environment="prod"))
        backend.provider_registry.register_all(default_providers())
        backend.add_component(ComponentDefinition("UserApi", "crud-api", CrudApi))
        backend.initialize(ConstructScope("app"))
        cosmos = backend.get_resource("cosmos", "shared")
    """

    def __init__(self, backend_id: str, config: BackendConfig | None = None) -> None:
        if not backend_id:
            raise ConfigurationError("Backend id is required")
        self._backend_id = backend_id
        self._config = config if config is not None else BackendConfig()
        self._naming = self._config.naming_convention()
        self._registry = ProviderRegistry(self._config.providers or ())
        self._definitions: Dict[str, ComponentDefinition] = {}
        self._components: Mapping[str, Component] = MappingProxyType({})
        self._resources: Mapping[str, Any] = EMPTY_RESOURCES
        self._state = BackendState.COLLECTING

    # Properties

    @property
    def backend_id(self) -> str:
        return self._backend_id

    @property
    def config(self) -> BackendConfig:
        return self._config

    @property
    def provider_registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is BackendState.INITIALIZED

    @property
    def component_definitions(self) -> Mapping[str, ComponentDefinition]:
        return MappingProxyType(self._definitions)

    @property
    def components(self) -> Mapping[str, Component]:
        """Initialized components by id. Empty until initialization succeeds."""
        return self._components

    @property
    def resources(self) -> Mapping[str, Any]:
        """Provisioned resources by resource key. Empty until initialization succeeds."""
        return self._resources

    # Registration

    def add_component(self, definition: ComponentDefinition) -> None:
        if self._state is BackendState.INITIALIZED:
            raise ComponentError(
                "Cannot add components after backend has been initialized",
                getattr(definition, "component_id", None),
                {"backend_id": self._backend_id},
            )
        if self._state is BackendState.FAILED:
            raise ComponentError(
                f'Cannot add components to backend "{self._backend_id}" after it failed '
                "to initialize",
                getattr(definition, "component_id", None),
                {"backend_id": self._backend_id},
            )

        component_id = getattr(definition, "component_id", None)
        if not component_id:
            raise ComponentError("Component must have a component_id")
        if component_id in self._definitions:
            raise duplicate_component_error(component_id, self._backend_id)

        self._definitions[component_id] = definition
        logger.debug(
            "component_added",
            backend_id=self._backend_id,
            component_id=component_id,
            component_type=definition.component_type,
        )

    def add_components(self, definitions: Iterable[ComponentDefinition]) -> None:
        for definition in definitions:
            self.add_component(definition)

    # Initialization

    def initialize(self, scope: Scope) -> InitializeResult:
        """
        Run all five phases against ``scope``.

        Raises:
            InitializationError: if any phase fails, with the failing phase
                and the original error attached as ``cause``. The backend is
                left in the failed state and cannot be reused.
        """
        if self._state is BackendState.INITIALIZED:
            raise InitializationError(
                f'Backend "{self._backend_id}" has already been initialized',
                self._backend_id,
                "state",
            )
        if self._state is BackendState.FAILED:
            raise InitializationError(
                f'Backend "{self._backend_id}" failed to initialize and cannot be reused',
                self._backend_id,
                "state",
            )

        started = time.perf_counter()
        logger.info(
            "backend_initialization_started",
            backend_id=self._backend_id,
            components=len(self._definitions),
        )

        requirements = self._run_phase(PHASE_COLLECT, self._collect_requirements, scope)
        self._run_phase(PHASE_VALIDATE, self._validate_requirements, requirements)
        grouped = group_by_resource_key(requirements)
        merged = self._run_phase(PHASE_MERGE, self._merge_requirements, grouped)
        resources = self._run_phase(
            PHASE_PROVISION, self._provision_resources, merged, grouped, scope
        )
        components = self._run_phase(
            PHASE_INITIALIZE_COMPONENTS, self._initialize_components, resources, scope
        )

        self._resources = resources
        self._components = MappingProxyType(components)
        self._state = BackendState.INITIALIZED

        result = InitializeResult(
            backend_id=self._backend_id,
            component_ids=list(components),
            resource_keys=list(resources),
            duration_seconds=time.perf_counter() - started,
        )
        logger.info(
            "backend_initialized",
            backend_id=self._backend_id,
            components=result.component_count,
            resources=result.resource_count,
            duration_seconds=round(result.duration_seconds, 4),
        )
        return result

    def _run_phase(self, phase: str, func: Callable[..., T], *args: Any) -> T:
        logger.debug("backend_phase_started", backend_id=self._backend_id, phase=phase)
        try:
            return func(*args)
        except Exception as e:
            self._state = BackendState.FAILED
            raise initialization_failure_error(self._backend_id, phase, e) from e

    def _backend_context(self) -> BackendContext:
        return BackendContext(backend_id=self._backend_id, environment=self._environment())

    def _environment(self) -> str:
        return self._config.environment or get_settings().default_environment

    def _location(self) -> str:
        return self._config.location or get_settings().default_location

    # Phase 1: collect

    def _collect_requirements(self, scope: Scope | None = None) -> List[ResourceRequirement]:
        """
        Harvest requirements from throwaway instances built in a private arena.

        When given, the caller's scope is marked backend-managed first.
        """
        context = self._backend_context()
        if scope is not None:
            mark_backend_managed(scope, context)

        arena = ConstructScope(f"{self._backend_id}-collect")
        requirements: List[ResourceRequirement] = []

        for component_id, definition in self._definitions.items():
            temp_scope = arena.create_child(f"temp-{component_id}")
            mark_backend_managed(temp_scope, context)
            try:
                component = definition.create(temp_scope, EMPTY_RESOURCES)
                declared = [validate_requirement(r) for r in component.get_requirements()]
            except BackplaneError:
                raise
            except Exception as e:
                raise ComponentError(
                    f'Failed to collect requirements from component "{component_id}": {e}',
                    component_id,
                ) from e

            requirements.extend(_with_source(r, component_id) for r in declared)
            logger.debug(
                "requirements_collected",
                backend_id=self._backend_id,
                component_id=component_id,
                count=len(declared),
            )

        _check_key_collisions(requirements)
        return requirements

    # Phase 2: validate

    def _validate_requirements(self, requirements: Sequence[ResourceRequirement]) -> None:
        coverage = self._registry.validate_requirements(requirements)
        if not coverage.valid:
            raise ProviderError(
                "Cannot satisfy all requirements. Missing providers for types: "
                + ", ".join(coverage.missing_types),
                details={"missing_types": list(coverage.missing_types)},
            )

        result = self._run_validators(requirements)
        for warning in result.warnings:
            logger.warning("requirement_warning", backend_id=self._backend_id, warning=warning)
        if not result.valid:
            raise validation_failure_error(result.errors, result.warnings)

    def _run_validators(self, requirements: Sequence[ResourceRequirement]) -> ValidationResult:
        """Run the validators attached to each requirement."""
        context = ValidationContext(
            all_requirements=tuple(requirements),
            existing_resources=EMPTY_RESOURCES,
            backend_config=self._config,
        )
        errors: List[str] = []
        warnings: List[str] = []
        for requirement in requirements:
            for validator in requirement.validators:
                result = validator.validate(requirement, context)
                prefix = f"{requirement.resource_key} [{validator.name}]"
                errors.extend(f"{prefix}: {e}" for e in result.errors)
                warnings.extend(f"{prefix}: {w}" for w in result.warnings)
        return ValidationResult.from_messages(errors, warnings)

    # Phase 3: merge

    def _merge_requirements(
        self, grouped: Mapping[str, List[ResourceRequirement]]
    ) -> List[ResourceRequirement]:
        return [self._merge_group(key, group) for key, group in grouped.items()]

    def _merge_group(self, key: str, group: Sequence[ResourceRequirement]) -> ResourceRequirement:
        if len(group) == 1:
            return group[0]

        provider = self._registry.find_provider_or_raise(group[0])
        merged = provider.merge_requirements(group)
        validation = provider.validate_merged(merged)
        if not validation.valid:
            raise MergeError(
                f'Merged requirement for "{key}" failed validation: '
                + ", ".join(validation.errors),
                [r.config for r in group],
                {"resource_key": key, "errors": list(validation.errors)},
            )

        logger.debug(
            "requirements_merged",
            backend_id=self._backend_id,
            resource_key=key,
            sources=[r.source for r in group],
        )
        return merged

    # Phase 4: provision

    def _provision_resources(
        self,
        requirements: Sequence[ResourceRequirement],
        grouped: Mapping[str, List[ResourceRequirement]],
        scope: Scope,
    ) -> Mapping[str, Any]:
        self._check_limits(requirements, grouped)

        staged: Dict[str, Any] = {}
        context = ProviderContext(
            backend_id=self._backend_id,
            naming=self._naming,
            tags=self._merged_tags(),
            existing_resources=MappingProxyType(staged),
            location=self._location(),
            environment=self._environment(),
            limits=self._config.limits,
        )

        for requirement in requirements:
            provider = self._registry.find_provider_or_raise(requirement)
            validation = provider.validate_merged(requirement)
            if not validation.valid:
                raise ProvisioningError(
                    f'Requirement "{requirement.resource_key}" failed validation: '
                    + ", ".join(validation.errors),
                    requirement.resource_type,
                    requirement.resource_key,
                    {"errors": list(validation.errors)},
                )
            try:
                resource = provider.provide_resource(requirement, scope, context)
            except BackplaneError:
                raise
            except Exception as e:
                raise provisioning_failure_error(
                    requirement.resource_type, requirement.requirement_key, str(e)
                ) from e
            staged[requirement.resource_key] = resource
            logger.info(
                "backend_resource_provisioned",
                backend_id=self._backend_id,
                resource_key=requirement.resource_key,
                provider_id=provider.provider_id,
            )

        return MappingProxyType(dict(staged))

    def _check_limits(
        self,
        requirements: Sequence[ResourceRequirement],
        grouped: Mapping[str, List[ResourceRequirement]],
    ) -> None:
        """Fail before anything is provisioned if a quota would be exceeded."""
        limits = self._config.limits

        counts: Dict[str, int] = {}
        for requirement in requirements:
            counts[requirement.resource_type] = counts.get(requirement.resource_type, 0) + 1
        for resource_type, count in counts.items():
            limit = limits.account_limit(resource_type)
            if limit is not None and count > limit:
                raise limit_exceeded_error(resource_type, limit, count)

        if limits.max_functions_per_app is not None:
            for group in grouped.values():
                if group[0].resource_type != "functions":
                    continue
                if len(group) > limits.max_functions_per_app:
                    raise limit_exceeded_error(
                        group[0].resource_key, limits.max_functions_per_app, len(group)
                    )

        if limits.max_containers_per_storage is not None:
            for requirement in requirements:
                if requirement.resource_type != "storage":
                    continue
                containers = len(requirement.config.get("containers") or ())
                if containers > limits.max_containers_per_storage:
                    raise limit_exceeded_error(
                        requirement.resource_key, limits.max_containers_per_storage, containers
                    )

    def _merged_tags(self) -> Dict[str, str]:
        return {"environment": self._environment(), **self._config.tags}

    # Phase 5: initialize components

    def _initialize_components(
        self, resources: Mapping[str, Any], scope: Scope
    ) -> Dict[str, Component]:
        components: Dict[str, Component] = {}
        for component_id, definition in self._definitions.items():
            try:
                component = definition.create(scope, resources)
                component.initialize(resources, scope)
            except BackplaneError:
                raise
            except Exception as e:
                raise ComponentError(
                    f'Failed to initialize component "{component_id}": {e}', component_id
                ) from e
            components[component_id] = component
            logger.debug(
                "component_initialized", backend_id=self._backend_id, component_id=component_id
            )
        return components

    # Queries

    def get_resource(self, resource_type: str, key: str = DEFAULT_REQUIREMENT_KEY) -> Any:
        return self._resources.get(f"{resource_type}:{key}")

    def get_component(self, component_id: str) -> Component | None:
        return self._components.get(component_id)

    def validate(self) -> ValidationResult:
        """Ask every initialized component to check its resources."""
        if not self.is_initialized:
            return ValidationResult.failed([NOT_INITIALIZED_MESSAGE])

        errors: List[str] = []
        warnings: List[str] = []
        for component_id, component in self._components.items():
            try:
                result = component.validate_resources(self._resources)
            except Exception as e:
                errors.append(f'Component "{component_id}" validation threw error: {e}')
                continue
            if not result.valid:
                errors.append(
                    f'Component "{component_id}" validation failed: ' + ", ".join(result.errors)
                )
            warnings.extend(f'Component "{component_id}": {w}' for w in result.warnings)

        return ValidationResult.from_messages(errors, warnings)

    def assert_valid(self) -> None:
        self.validate().raise_for_errors()

    def plan(self) -> BackendPlan:
        """
        Dry run of collect, validate and merge.

        Nothing is provisioned and the backend state is untouched. Problems
        are recorded on the returned plan instead of raised.
        """
        collector = PlanCollector(self._backend_id)

        try:
            requirements = self._collect_requirements()
        except Exception as e:
            collector.record_error(PHASE_COLLECT, e)
            return collector.finalize()

        coverage = self._registry.validate_requirements(requirements)
        collector.record_missing(list(coverage.missing_types))
        try:
            checks = self._run_validators(requirements)
        except Exception as e:
            collector.record_error(PHASE_VALIDATE, e)
        else:
            for error in checks.errors:
                collector.record_error(PHASE_VALIDATE, error)
            collector.record_warnings(list(checks.warnings))

        for key, group in group_by_resource_key(requirements).items():
            if group[0].resource_type in coverage.missing_types:
                continue
            try:
                merged = self._merge_group(key, group)
            except Exception as e:
                collector.record_error(PHASE_MERGE, e)
                continue
            sources = list(dict.fromkeys(r.source for r in group if r.source))
            collector.record(merged, sources)

        plan = collector.finalize()
        logger.debug(
            "backend_planned",
            backend_id=self._backend_id,
            resources=plan.total_resources,
            missing_types=plan.missing_types,
            errors=len(plan.errors),
        )
        return plan

    def __repr__(self) -> str:
        return f"Backend({self._backend_id!r}, state={self._state.value})"


def _with_source(requirement: ResourceRequirement, component_id: str) -> ResourceRequirement:
    """Record which component declared a requirement unless it already says."""
    if requirement.metadata is None:
        return requirement.with_metadata(RequirementMetadata(source=component_id))
    if not requirement.metadata.source:
        return requirement.with_metadata(replace(requirement.metadata, source=component_id))
    return requirement


def _check_key_collisions(requirements: Iterable[ResourceRequirement]) -> None:
    """Resource keys that differ only by case would get the same resource name."""
    seen: Dict[str, str] = {}
    for requirement in requirements:
        key = requirement.resource_key
        folded = key.lower()
        other = seen.setdefault(folded, key)
        if other != key:
            raise RequirementError(
                f'Resource keys "{other}" and "{key}" differ only by case',
                requirement.resource_type,
                requirement.requirement_key,
                {"colliding_keys": [other, key]},
            )
