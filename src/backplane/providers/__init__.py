"""
Resource providers.

Provides:
- The ResourceProvider contract and BaseProvider implementation
- ProviderRegistry and the process-wide global registry
- Built-in Cosmos DB, Function App and Storage providers
- GenericProvider for untyped resource types
"""

from __future__ import annotations

from typing import Callable, Dict, List

from backplane.providers.base import (
    BaseProvider,
    ProviderContext,
    ProvisionedResource,
    ResourceProvider,
)
from backplane.providers.cosmos import CosmosConfig, CosmosProvider
from backplane.providers.functions import FunctionsConfig, FunctionsProvider
from backplane.providers.generic import GenericProvider
from backplane.providers.registry import (
    ProviderRegistry,
    RequirementCoverage,
    get_global_provider,
    global_registry,
    is_globally_supported,
    register_global_provider,
    register_global_providers,
)
from backplane.providers.storage import StorageConfig, StorageProvider

# provider id -> factory for the built-in providers
BUILTIN_PROVIDERS: Dict[str, Callable[[], ResourceProvider]] = {
    CosmosProvider.provider_id: CosmosProvider,
    FunctionsProvider.provider_id: FunctionsProvider,
    StorageProvider.provider_id: StorageProvider,
}


def default_providers() -> List[ResourceProvider]:
    """Fresh instances of the built-in providers."""
    return [factory() for factory in BUILTIN_PROVIDERS.values()]


def resolve_provider(provider_id: str) -> ResourceProvider | None:
    """Look a provider up in the global registry, then among the built-ins."""
    provider = get_global_provider(provider_id)
    if provider is not None:
        return provider
    factory = BUILTIN_PROVIDERS.get(provider_id)
    return factory() if factory else None


__all__ = [
    "ResourceProvider",
    "BaseProvider",
    "ProviderContext",
    "ProvisionedResource",
    "ProviderRegistry",
    "RequirementCoverage",
    "global_registry",
    "register_global_provider",
    "register_global_providers",
    "get_global_provider",
    "is_globally_supported",
    "CosmosProvider",
    "CosmosConfig",
    "FunctionsProvider",
    "FunctionsConfig",
    "StorageProvider",
    "StorageConfig",
    "GenericProvider",
    "BUILTIN_PROVIDERS",
    "default_providers",
    "resolve_provider",
]
