"""Core modules for backplane - error taxonomy and shared definitions."""

from backplane.core.errors import (
    BackplaneError,
    ComponentError,
    ConfigurationError,
    ErrorCode,
    InitializationError,
    MergeError,
    ProviderError,
    ProvisioningError,
    RequirementError,
    ResourceLimitError,
    ValidationError,
    component_not_found_error,
    duplicate_component_error,
    format_error_message,
    incompatible_configs_error,
    initialization_failure_error,
    invalid_requirement_error,
    limit_exceeded_error,
    missing_provider_error,
    provider_failure_error,
    provisioning_failure_error,
    validation_failure_error,
)

__all__ = [
    # Errors
    "ErrorCode",
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
    # Factories
    "duplicate_component_error",
    "component_not_found_error",
    "invalid_requirement_error",
    "missing_provider_error",
    "provider_failure_error",
    "provisioning_failure_error",
    "validation_failure_error",
    "incompatible_configs_error",
    "limit_exceeded_error",
    "initialization_failure_error",
    "format_error_message",
]
