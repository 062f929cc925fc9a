"""Result types for backend planning and initialization."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from backplane.models import ResourceRequirement


@dataclass
class InitializeResult:
    """Result of initializing a backend."""

    backend_id: str
    component_ids: List[str] = field(default_factory=list)
    resource_keys: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def component_count(self) -> int:
        return len(self.component_ids)

    @property
    def resource_count(self) -> int:
        return len(self.resource_keys)


@dataclass
class BackendPlan:
    """Result of planning (dry-run) a backend: what would be provisioned."""

    backend_id: str
    requirements: Dict[str, ResourceRequirement] = field(default_factory=dict)
    sources: Dict[str, List[str]] = field(default_factory=dict)
    missing_types: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_resources(self) -> int:
        """Number of distinct resources that would be provisioned."""
        return len(self.requirements)

    @property
    def resources_by_type(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for requirement in self.requirements.values():
            counts[requirement.resource_type] = counts.get(requirement.resource_type, 0) + 1
        return counts

    @property
    def success(self) -> bool:
        """Whether planning succeeded without errors."""
        return not self.errors and not self.missing_types


class PlanCollector:
    """Aggregates merge results and failures while planning."""

    def __init__(self, backend_id: str) -> None:
        self._plan = BackendPlan(backend_id=backend_id)

    def record(self, requirement: ResourceRequirement, sources: List[str]) -> None:
        """Record a merged requirement and the components that asked for it."""
        self._plan.requirements[requirement.resource_key] = requirement
        self._plan.sources[requirement.resource_key] = sources

    def record_missing(self, missing_types: List[str]) -> None:
        self._plan.missing_types.extend(missing_types)

    def record_error(self, phase: str, error: Exception | str) -> None:
        self._plan.errors.append(f"{phase.capitalize()} failed: {error}")

    def record_warnings(self, warnings: List[str]) -> None:
        self._plan.warnings.extend(warnings)

    def finalize(self) -> BackendPlan:
        return self._plan
