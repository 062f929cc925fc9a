"""
Requirement analysis and merge utilities.

Pure functions used by the backend and by providers: resource key handling,
grouping, priority ordering and the default deep-merge building block.
None of these functions mutate their inputs.
"""

from __future__ import annotations

import re
from copy import deepcopy
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from backplane.core.errors import invalid_requirement_error
from backplane.models import ResourceRequirement

DEFAULT_REQUIREMENT_PRIORITY = 10

_REQUIREMENT_KEY_PATTERN = re.compile(r"^[a-z0-9-]+$")


# Resource keys


def format_resource_key(resource_type: str, requirement_key: str) -> str:
    """Format ``type:key``; both parts are required."""
    if not resource_type or not requirement_key:
        raise ValueError("Resource type and requirement key are required")
    return f"{resource_type}:{requirement_key}"


def parse_resource_key(resource_key: str) -> tuple[str, str]:
    """Split a resource key back into ``(resource_type, requirement_key)``."""
    parts = resource_key.split(":")
    if len(parts) != 2:
        raise ValueError(
            f'Invalid resource key format: "{resource_key}". '
            'Expected format: "resourceType:requirementKey"'
        )
    resource_type, requirement_key = parts
    if not resource_type or not requirement_key:
        raise ValueError(
            f'Invalid resource key format: "{resource_key}". Both parts must be non-empty'
        )
    return resource_type, requirement_key


def resource_key_of(requirement: ResourceRequirement) -> str:
    return format_resource_key(requirement.resource_type, requirement.requirement_key)


def format_resource_key_with_suffix(resource_type: str, requirement_key: str, suffix: int) -> str:
    """Key for the n-th split of a resource, e.g. ``storage:shared-2``."""
    if suffix < 1:
        raise ValueError("Suffix must be a positive integer")
    return format_resource_key(resource_type, f"{requirement_key}-{suffix}")


# Validation


def validate_requirement(requirement: Any) -> ResourceRequirement:
    """
    Check a requirement is structurally sound and return it as a
    ResourceRequirement.

    Components may hand back plain mappings; those are converted. Anything
    else raises RequirementError.
    """
    if isinstance(requirement, Mapping):
        return ResourceRequirement.from_dict(requirement)
    if not isinstance(requirement, ResourceRequirement):
        raise invalid_requirement_error(
            f"expected ResourceRequirement or mapping, got {type(requirement).__name__}"
        )
    if not requirement.resource_type:
        raise invalid_requirement_error("missing resource_type")
    if not requirement.requirement_key:
        raise invalid_requirement_error("missing requirement_key", requirement.resource_type)
    if not isinstance(requirement.config, Mapping):
        raise invalid_requirement_error(
            "config must be a mapping", requirement.resource_type, requirement.requirement_key
        )
    return requirement


def is_valid_requirement_key(key: str) -> bool:
    """Lowercase letters, digits and hyphens only."""
    return bool(_REQUIREMENT_KEY_PATTERN.match(key))


def sanitize_requirement_key(key: str) -> str:
    key = re.sub(r"[^a-z0-9-]", "-", key.lower())
    key = re.sub(r"-+", "-", key)
    return key.strip("-")


# Grouping


def group_by_resource_key(
    requirements: Iterable[ResourceRequirement],
) -> Dict[str, List[ResourceRequirement]]:
    """Group by resource key, preserving first-occurrence order of keys."""
    grouped: Dict[str, List[ResourceRequirement]] = {}
    for requirement in requirements:
        grouped.setdefault(resource_key_of(requirement), []).append(requirement)
    return grouped


def group_by_resource_type(
    requirements: Iterable[ResourceRequirement],
) -> Dict[str, List[ResourceRequirement]]:
    grouped: Dict[str, List[ResourceRequirement]] = {}
    for requirement in requirements:
        grouped.setdefault(requirement.resource_type, []).append(requirement)
    return grouped


def unique_resource_types(requirements: Iterable[ResourceRequirement]) -> List[str]:
    """Distinct resource types in first-seen order."""
    return list(dict.fromkeys(r.resource_type for r in requirements))


def filter_by_type(
    requirements: Iterable[ResourceRequirement], resource_type: str
) -> List[ResourceRequirement]:
    return [r for r in requirements if r.resource_type == resource_type]


# Priority


def effective_priority(requirement: ResourceRequirement) -> int:
    if requirement.priority is None:
        return DEFAULT_REQUIREMENT_PRIORITY
    return requirement.priority


def sort_by_priority(requirements: Sequence[ResourceRequirement]) -> List[ResourceRequirement]:
    """Highest priority first; ties keep their input order."""
    return sorted(requirements, key=effective_priority, reverse=True)


def highest_priority(requirements: Sequence[ResourceRequirement]) -> ResourceRequirement:
    if not requirements:
        raise ValueError("Cannot get highest priority from empty requirements")
    return sort_by_priority(requirements)[0]


# Deep merge


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge ``source`` over ``target`` and return a new dict.

    Nested mappings merge recursively. Lists and scalars from ``source``
    replace the value in ``target`` wholesale.
    """
    result = deepcopy(dict(target))
    for key, value in source.items():
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = deepcopy(value)
    return result


def deep_merge_all(objects: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Fold ``deep_merge`` left to right; later objects win."""
    result: Dict[str, Any] = {}
    for obj in objects:
        result = deep_merge(result, obj)
    return result


# Environment variables


def namespace_environment_variable(component_id: str, variable_name: str) -> str:
    """
    ``my-api`` + ``TABLE`` -> ``MY_API_TABLE``.

    Only non-alphanumerics become underscores, so ``UserApi`` gives
    ``USERAPI_TABLE``. The Function App provider namespaces with
    ``backplane.merger.namespace_env_var`` instead, which splits camel case.
    """
    prefix = re.sub(r"[^a-zA-Z0-9]", "_", component_id).upper()
    return f"{prefix}_{variable_name}"


def merge_environment_variables(sources: Iterable[Mapping[str, str]]) -> Dict[str, str]:
    """Later sources win on duplicate names."""
    merged: Dict[str, str] = {}
    for source in sources:
        merged.update(source)
    return merged
