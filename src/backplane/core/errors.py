"""
Typed error taxonomy for backplane.

Every error carries a machine-readable ``code`` and a ``details`` mapping
with structured context, so callers can branch on type or code instead of
parsing messages.

Codes:
- COMPONENT_ERROR: bad, duplicate or missing component
- REQUIREMENT_ERROR: malformed resource requirement
- PROVIDER_ERROR: missing or failing resource provider
- PROVISIONING_ERROR: resource creation failed
- VALIDATION_ERROR: validation failed (carries the full error list)
- MERGE_ERROR: incompatible configurations within a requirement group
- RESOURCE_LIMIT_ERROR: quota exceeded
- CONFIGURATION_ERROR: unreadable or invalid backend configuration
- INITIALIZATION_ERROR: backend initialization failed (wraps the cause)
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Sequence

import structlog

logger = structlog.get_logger()


class ErrorCode(StrEnum):
    """Machine-readable error codes."""

    BACKEND_ERROR = "BACKEND_ERROR"
    COMPONENT_ERROR = "COMPONENT_ERROR"
    REQUIREMENT_ERROR = "REQUIREMENT_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVISIONING_ERROR = "PROVISIONING_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MERGE_ERROR = "MERGE_ERROR"
    RESOURCE_LIMIT_ERROR = "RESOURCE_LIMIT_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INITIALIZATION_ERROR = "INITIALIZATION_ERROR"


class BackplaneError(Exception):
    """Base exception for backplane errors with code and structured details."""

    code: ErrorCode = ErrorCode.BACKEND_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ComponentError(BackplaneError):
    """Raised for bad, duplicate or missing components."""

    code = ErrorCode.COMPONENT_ERROR

    def __init__(
        self,
        message: str,
        component_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, {**(details or {}), "component_id": component_id})
        self.component_id = component_id


class RequirementError(BackplaneError):
    """Raised for malformed resource requirements."""

    code = ErrorCode.REQUIREMENT_ERROR

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        requirement_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            {
                **(details or {}),
                "resource_type": resource_type,
                "requirement_key": requirement_key,
            },
        )
        self.resource_type = resource_type
        self.requirement_key = requirement_key


class ProviderError(BackplaneError):
    """Raised when a provider is missing or fails."""

    code = ErrorCode.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        provider_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, {**(details or {}), "provider_id": provider_id})
        self.provider_id = provider_id


class ProvisioningError(BackplaneError):
    """Raised when creating a resource fails."""

    code = ErrorCode.PROVISIONING_ERROR

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            {**(details or {}), "resource_type": resource_type, "resource_key": resource_key},
        )
        self.resource_type = resource_type
        self.resource_key = resource_key


class ValidationError(BackplaneError):
    """Raised for validation failures. Carries every error, not just the first."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        errors: Sequence[str],
        warnings: Sequence[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.errors = tuple(errors)
        self.warnings = tuple(warnings or ())
        super().__init__(
            message,
            {**(details or {}), "errors": list(self.errors), "warnings": list(self.warnings)},
        )


class MergeError(BackplaneError):
    """Raised when configurations within a requirement group cannot be merged."""

    code = ErrorCode.MERGE_ERROR

    def __init__(
        self,
        message: str,
        conflicting_configs: Sequence[Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.conflicting_configs = tuple(conflicting_configs or ())
        super().__init__(message, details)


class ResourceLimitError(BackplaneError):
    """Raised when a resource quota would be exceeded."""

    code = ErrorCode.RESOURCE_LIMIT_ERROR

    def __init__(
        self,
        message: str,
        resource_type: str,
        limit: int,
        current: int,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            {**(details or {}), "resource_type": resource_type, "limit": limit, "current": current},
        )
        self.resource_type = resource_type
        self.limit = limit
        self.current = current


class ConfigurationError(BackplaneError):
    """Raised for configuration-related errors."""

    code = ErrorCode.CONFIGURATION_ERROR


class InitializationError(BackplaneError):
    """
    Top-level wrapper for backend initialization failures.

    The original error is kept on ``cause`` (and chained as ``__cause__``)
    so callers can still inspect its type and details.
    """

    code = ErrorCode.INITIALIZATION_ERROR

    def __init__(
        self,
        message: str,
        backend_id: str | None = None,
        phase: str | None = None,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ):
        context = {**(details or {}), "backend_id": backend_id, "phase": phase}
        if isinstance(cause, BackplaneError):
            context["cause_code"] = str(cause.code)
        super().__init__(message, context)
        self.backend_id = backend_id
        self.phase = phase
        self.cause = cause


# Factory helpers for common failures


def duplicate_component_error(component_id: str, backend_id: str) -> ComponentError:
    return ComponentError(
        f'Component with ID "{component_id}" already exists in backend "{backend_id}"',
        component_id,
        {"backend_id": backend_id},
    )


def component_not_found_error(component_id: str, backend_id: str) -> ComponentError:
    return ComponentError(
        f'Component "{component_id}" not found in backend "{backend_id}"',
        component_id,
        {"backend_id": backend_id},
    )


def invalid_requirement_error(
    reason: str,
    resource_type: str | None = None,
    requirement_key: str | None = None,
) -> RequirementError:
    return RequirementError(f"Invalid requirement: {reason}", resource_type, requirement_key)


def missing_provider_error(resource_type: str) -> ProviderError:
    return ProviderError(
        f'No provider found for resource type "{resource_type}". '
        "Register a custom provider or ensure the resource type is supported.",
        details={"resource_type": resource_type},
    )


def provider_failure_error(provider_id: str, operation: str, reason: str) -> ProviderError:
    return ProviderError(
        f'Provider "{provider_id}" failed during {operation}: {reason}',
        provider_id,
        {"operation": operation, "reason": reason},
    )


def provisioning_failure_error(
    resource_type: str, requirement_key: str, reason: str
) -> ProvisioningError:
    return ProvisioningError(
        f'Failed to provision resource "{resource_type}:{requirement_key}": {reason}',
        resource_type,
        f"{resource_type}:{requirement_key}",
        {"reason": reason},
    )


def validation_failure_error(
    errors: Sequence[str], warnings: Sequence[str] | None = None
) -> ValidationError:
    return ValidationError(f"Validation failed with {len(errors)} error(s)", errors, warnings)


def incompatible_configs_error(
    resource_type: str, reason: str, configs: Sequence[Any] | None = None
) -> MergeError:
    return MergeError(
        f'Cannot merge configurations for "{resource_type}": {reason}',
        configs,
        {"resource_type": resource_type, "reason": reason},
    )


def limit_exceeded_error(resource_type: str, limit: int, current: int) -> ResourceLimitError:
    return ResourceLimitError(
        f'Resource limit exceeded for "{resource_type}". Maximum: {limit}, Current: {current}',
        resource_type,
        limit,
        current,
    )


def initialization_failure_error(
    backend_id: str, phase: str, cause: BaseException
) -> InitializationError:
    reason = cause.message if isinstance(cause, BackplaneError) else str(cause)
    logger.error(
        "backend_initialization_failed",
        backend_id=backend_id,
        phase=phase,
        error_type=type(cause).__name__,
        message=reason,
    )
    return InitializationError(
        f'Backend "{backend_id}" failed to initialize during {phase}: {reason}',
        backend_id,
        phase,
        cause,
        {"reason": reason},
    )


def format_error_message(error: BackplaneError) -> str:
    """Format an error message with its non-empty details for display."""
    msg = error.message
    shown = {k: v for k, v in error.details.items() if v is not None}
    if shown:
        detail_str = ", ".join(f"{k}={v}" for k, v in shown.items())
        msg = f"{msg} ({detail_str})"
    return msg
