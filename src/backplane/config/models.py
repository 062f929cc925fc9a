"""
Backend configuration models.

BackendConfig is set once when a backend is created and never changes
afterwards.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator


@runtime_checkable
class NamingConvention(Protocol):
    """Formats names for provisioned resources and resource groups."""

    def format_resource_name(
        self, resource_type: str, backend_id: str, suffix: str | None = None
    ) -> str:
        ...

    def format_resource_group_name(self, backend_id: str, environment: str | None = None) -> str:
        ...


class DefaultNamingConvention:
    """
    Lower-case, hyphen-joined names.

    ``format_resource_name("cosmos", "MyApp", "shared")`` -> ``cosmos-myapp-shared``
    ``format_resource_group_name("MyApp", "prod")`` -> ``rg-myapp-prod``
    """

    def __init__(self, prefix: str | None = None, separator: str = "-") -> None:
        self.prefix = prefix
        self.separator = separator

    def _join(self, parts: list[str | None]) -> str:
        return self.separator.join(p for p in parts if p).lower()

    def format_resource_name(
        self, resource_type: str, backend_id: str, suffix: str | None = None
    ) -> str:
        return self._join([self.prefix, resource_type, backend_id, suffix])

    def format_resource_group_name(self, backend_id: str, environment: str | None = None) -> str:
        return self._join(["rg", self.prefix, backend_id, environment])


# Resource type -> ResourceLimits field capping how many of that type may exist
_ACCOUNT_LIMIT_FIELDS = {
    "cosmos": "max_cosmos_accounts",
    "functions": "max_function_apps",
    "storage": "max_storage_accounts",
}


class ResourceLimits(BaseModel):
    """Quotas checked before anything is provisioned."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_cosmos_accounts: int | None = Field(default=None, ge=0)
    max_function_apps: int | None = Field(default=None, ge=0)
    max_storage_accounts: int | None = Field(default=None, ge=0)
    max_functions_per_app: int | None = Field(default=None, ge=0)
    max_containers_per_storage: int | None = Field(default=None, ge=0)

    def account_limit(self, resource_type: str) -> int | None:
        """Maximum number of distinct resources of this type, if capped."""
        field_name = _ACCOUNT_LIMIT_FIELDS.get(resource_type)
        return getattr(self, field_name) if field_name else None


class BackendConfig(BaseModel):
    """Caller-supplied, immutable backend configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    environment: str | None = None
    location: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    naming: Any = None
    providers: tuple[Any, ...] | None = None
    limits: ResourceLimits = Field(default_factory=ResourceLimits)

    @field_validator("naming")
    @classmethod
    def _check_naming(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, NamingConvention):
            raise ValueError(
                "naming must implement format_resource_name() and format_resource_group_name()"
            )
        return value

    @field_validator("providers", mode="before")
    @classmethod
    def _coerce_providers(cls, value: Any) -> Any:
        if value is None:
            return None
        return tuple(value)

    def naming_convention(self) -> NamingConvention:
        return self.naming if self.naming is not None else DefaultNamingConvention()

    def with_overrides(self, **changes: Any) -> BackendConfig:
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BackendConfig:
        return cls.model_validate(dict(data))
