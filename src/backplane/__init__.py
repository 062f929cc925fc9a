"""
backplane - resolve, deduplicate and provision the shared resources that
independently written components declare, then hand the results back to
each component.
"""

from backplane.backend import Backend, BackendState
from backplane.builder import BackendBuilder
from backplane.components import (
    BaseComponent,
    Component,
    ComponentDefinition,
    assert_factory_is_pure,
)
from backplane.config import (
    BackendConfig,
    DefaultNamingConvention,
    NamingConvention,
    ResourceLimits,
    load_backend_config,
)
from backplane.core.errors import (
    BackplaneError,
    ComponentError,
    ConfigurationError,
    InitializationError,
    MergeError,
    ProviderError,
    ProvisioningError,
    RequirementError,
    ResourceLimitError,
    ValidationError,
)
from backplane.models import (
    RequirementMetadata,
    ResourceRequirement,
    ValidationContext,
    ValidationResult,
)
from backplane.providers import (
    BaseProvider,
    GenericProvider,
    ProviderContext,
    ProviderRegistry,
    ProvisionedResource,
    ResourceProvider,
    default_providers,
)
from backplane.results import BackendPlan, InitializeResult
from backplane.scope import BackendContext, ConstructScope, Scope, is_backend_managed
from backplane.typed import TypedBackend, define_backend

__version__ = "0.1.0"

__all__ = [
    # Orchestration
    "Backend",
    "BackendState",
    "BackendPlan",
    "InitializeResult",
    "TypedBackend",
    "define_backend",
    "BackendBuilder",
    # Components
    "Component",
    "ComponentDefinition",
    "BaseComponent",
    "assert_factory_is_pure",
    # Requirements
    "ResourceRequirement",
    "RequirementMetadata",
    "ValidationContext",
    "ValidationResult",
    # Providers
    "ResourceProvider",
    "BaseProvider",
    "GenericProvider",
    "ProviderContext",
    "ProviderRegistry",
    "ProvisionedResource",
    "default_providers",
    # Scope
    "Scope",
    "ConstructScope",
    "BackendContext",
    "is_backend_managed",
    # Configuration
    "BackendConfig",
    "ResourceLimits",
    "NamingConvention",
    "DefaultNamingConvention",
    "load_backend_config",
    # Errors
    "BackplaneError",
    "ComponentError",
    "RequirementError",
    "ProviderError",
    "ProvisioningError",
    "ValidationError",
    "MergeError",
    "ResourceLimitError",
    "ConfigurationError",
    "InitializationError",
]
