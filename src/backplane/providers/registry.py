"""
Provider registry.

Maps resource types to the providers able to supply them. Lookup follows
registration order, so the first capable provider registered for a type
wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

import structlog

from backplane.core.errors import ProviderError, missing_provider_error
from backplane.models import ResourceRequirement
from backplane.providers.base import ResourceProvider

logger = structlog.get_logger()


@dataclass(frozen=True)
class RequirementCoverage:
    """Result of checking that every requirement has a provider."""

    valid: bool
    missing_types: tuple[str, ...] = ()


class ProviderRegistry:
    """In-memory registry of resource providers keyed by provider id."""

    def __init__(self, providers: Iterable[ResourceProvider] = ()) -> None:
        self._providers: Dict[str, ResourceProvider] = {}
        # resource type -> provider ids, dict used as an ordered set
        self._type_index: Dict[str, Dict[str, None]] = {}
        self.register_all(providers)

    def register(self, provider: ResourceProvider) -> None:
        provider_id = getattr(provider, "provider_id", None)
        if not provider_id:
            raise ProviderError("Provider must have a provider_id")

        supported = list(getattr(provider, "supported_types", None) or ())
        if not supported:
            raise ProviderError(
                f'Provider "{provider_id}" must support at least one resource type',
                provider_id,
            )

        if provider_id in self._providers:
            raise ProviderError(
                f'Provider with ID "{provider_id}" is already registered', provider_id
            )

        self._providers[provider_id] = provider
        for resource_type in supported:
            self._type_index.setdefault(resource_type, {})[provider_id] = None

        logger.debug("provider_registered", provider_id=provider_id, supported_types=supported)

    def register_all(self, providers: Iterable[ResourceProvider]) -> None:
        for provider in providers:
            self.register(provider)

    def unregister(self, provider_id: str) -> bool:
        provider = self._providers.pop(provider_id, None)
        if provider is None:
            return False

        for resource_type in list(provider.supported_types):
            ids = self._type_index.get(resource_type)
            if ids is None:
                continue
            ids.pop(provider_id, None)
            if not ids:
                del self._type_index[resource_type]
        return True

    def get_provider(self, provider_id: str) -> ResourceProvider | None:
        return self._providers.get(provider_id)

    def all_providers(self) -> List[ResourceProvider]:
        return list(self._providers.values())

    def providers_for_type(self, resource_type: str) -> List[ResourceProvider]:
        """Providers indexed under ``resource_type``, in registration order."""
        ids = self._type_index.get(resource_type, {})
        return [self._providers[pid] for pid in ids]

    def find_provider(self, requirement: ResourceRequirement) -> ResourceProvider | None:
        for provider in self.providers_for_type(requirement.resource_type):
            if provider.can_provide(requirement):
                return provider
        return None

    def find_provider_or_raise(self, requirement: ResourceRequirement) -> ResourceProvider:
        provider = self.find_provider(requirement)
        if provider is None:
            raise missing_provider_error(requirement.resource_type)
        return provider

    def is_type_supported(self, resource_type: str) -> bool:
        return bool(self._type_index.get(resource_type))

    def supported_types(self) -> List[str]:
        return list(self._type_index)

    def can_provide(self, requirement: ResourceRequirement) -> bool:
        return self.find_provider(requirement) is not None

    def validate_requirements(
        self, requirements: Sequence[ResourceRequirement]
    ) -> RequirementCoverage:
        """Check coverage of every requirement without side effects."""
        missing: Dict[str, None] = {}
        for requirement in requirements:
            if not self.can_provide(requirement):
                missing[requirement.resource_type] = None
        return RequirementCoverage(valid=not missing, missing_types=tuple(missing))

    def clear(self) -> None:
        self._providers.clear()
        self._type_index.clear()

    @property
    def is_empty(self) -> bool:
        return not self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __repr__(self) -> str:
        return f"ProviderRegistry(providers={list(self._providers)!r})"


global_registry = ProviderRegistry()


def register_global_provider(provider: ResourceProvider) -> None:
    global_registry.register(provider)


def register_global_providers(providers: Iterable[ResourceProvider]) -> None:
    global_registry.register_all(providers)


def get_global_provider(provider_id: str) -> ResourceProvider | None:
    return global_registry.get_provider(provider_id)


def is_globally_supported(resource_type: str) -> bool:
    return global_registry.is_type_supported(resource_type)
