"""
Resource requirement models.

Data models for the requirements components declare, the validation
results exchanged between components, providers and the backend, and the
context handed to per-requirement validators.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence, runtime_checkable

from backplane.core.errors import RequirementError, validation_failure_error

if TYPE_CHECKING:
    from backplane.config import BackendConfig

DEFAULT_REQUIREMENT_KEY = "default"
DEFAULT_METADATA_VERSION = "1.0"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation pass: errors block, warnings inform."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @classmethod
    def ok(cls, warnings: Sequence[str] = ()) -> ValidationResult:
        return cls(valid=True, warnings=tuple(warnings))

    @classmethod
    def failed(cls, errors: Sequence[str], warnings: Sequence[str] = ()) -> ValidationResult:
        return cls(valid=False, errors=tuple(errors), warnings=tuple(warnings))

    @classmethod
    def from_messages(
        cls, errors: Sequence[str], warnings: Sequence[str] = ()
    ) -> ValidationResult:
        """Build a result whose validity follows from whether any errors exist."""
        return cls(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))

    @classmethod
    def combine(cls, *results: ValidationResult) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        for result in results:
            errors.extend(result.errors)
            warnings.extend(result.warnings)
        return cls.from_messages(errors, warnings)

    def raise_for_errors(self) -> None:
        """Raise ValidationError carrying every error if this result is invalid."""
        if not self.valid:
            raise validation_failure_error(self.errors, self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class RequirementMetadata:
    """Tracing information about where a requirement came from."""

    source: str
    version: str = DEFAULT_METADATA_VERSION
    description: str | None = None


@dataclass(frozen=True)
class ValidationContext:
    """Everything a requirement validator may look at."""

    all_requirements: tuple[ResourceRequirement, ...]
    existing_resources: Mapping[str, Any]
    backend_config: BackendConfig


@runtime_checkable
class RequirementValidator(Protocol):
    """Validator attached to a requirement, run before merging."""

    @property
    def name(self) -> str:
        ...

    def validate(
        self, requirement: ResourceRequirement, context: ValidationContext
    ) -> ValidationResult:
        ...


@dataclass(frozen=True)
class ResourceRequirement:
    """
    A component's declared need for a shareable resource.

    ``resource_type`` plus ``requirement_key`` form the resource key, the unit
    of deduplication. Requirements are immutable; use ``with_metadata`` or
    ``with_config`` to derive variants.
    """

    resource_type: str
    requirement_key: str
    config: Mapping[str, Any] = field(default_factory=dict)
    priority: int | None = None
    metadata: RequirementMetadata | None = None
    validators: tuple[RequirementValidator, ...] = ()

    def __post_init__(self) -> None:
        if not self.resource_type:
            raise RequirementError(
                "Resource requirement must have a resource_type",
                self.resource_type or None,
                self.requirement_key or None,
            )
        if not self.requirement_key:
            raise RequirementError(
                "Resource requirement must have a requirement_key",
                self.resource_type,
                None,
            )
        if not isinstance(self.config, Mapping):
            raise RequirementError(
                "Resource requirement config must be a mapping",
                self.resource_type,
                self.requirement_key,
            )

    @property
    def resource_key(self) -> str:
        return f"{self.resource_type}:{self.requirement_key}"

    @property
    def source(self) -> str | None:
        return self.metadata.source if self.metadata else None

    def with_metadata(self, metadata: RequirementMetadata) -> ResourceRequirement:
        return replace(self, metadata=metadata)

    def with_config(self, config: Mapping[str, Any]) -> ResourceRequirement:
        return replace(self, config=config)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResourceRequirement:
        """Build a requirement from a plain mapping (e.g. loaded from YAML)."""
        metadata = data.get("metadata")
        if isinstance(metadata, Mapping):
            metadata = RequirementMetadata(
                source=metadata.get("source", ""),
                version=metadata.get("version", DEFAULT_METADATA_VERSION),
                description=metadata.get("description"),
            )
        return cls(
            resource_type=data.get("resource_type", ""),
            requirement_key=data.get("requirement_key", ""),
            config=data.get("config", {}),
            priority=data.get("priority"),
            metadata=metadata,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "resource_type": self.resource_type,
            "requirement_key": self.requirement_key,
            "config": dict(self.config),
            "priority": self.priority,
            "metadata": (
                {
                    "source": self.metadata.source,
                    "version": self.metadata.version,
                    "description": self.metadata.description,
                }
                if self.metadata
                else None
            ),
        }
