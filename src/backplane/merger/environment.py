"""
Environment variable namespacing.

Components sharing a host get their variables prefixed with their
component id so they cannot collide: ``UserApi`` + ``table`` ->
``USER_API_TABLE``.
"""

from __future__ import annotations

import re
from typing import Dict, Sequence

import structlog

from backplane.models import ResourceRequirement

logger = structlog.get_logger()


def _normalize(value: str) -> str:
    value = re.sub(r"[^A-Z0-9_]", "_", value.upper())
    return re.sub(r"_+", "_", value).strip("_")


def namespace_env_var(component_id: str, variable_name: str) -> str:
    """
    ``UserApi`` + ``table`` -> ``USER_API_TABLE``; used by the Function App
    provider. ``backplane.requirements.namespace_environment_variable`` does
    not split camel case and gives ``USERAPI_TABLE``.
    """
    normalized_id = _normalize(re.sub(r"([a-z])([A-Z])", r"\1_\2", component_id))
    return f"{normalized_id}_{_normalize(variable_name)}"


def merge_namespaced_environment_variables(
    requirements: Sequence[ResourceRequirement],
) -> Dict[str, str]:
    """
    Collect ``environment_variables`` from each requirement's config,
    namespaced by the requirement's source component. Later values win on
    conflict; conflicts are logged.
    """
    merged: Dict[str, str] = {}
    conflicts: list[str] = []
    for requirement in requirements:
        variables = requirement.config.get("environment_variables") or {}
        component_id = requirement.source or "unknown"
        for key, value in variables.items():
            name = namespace_env_var(component_id, key)
            if name in merged and merged[name] != value:
                conflicts.append(f"Conflict for {name}: {merged[name]} vs {value}")
            merged[name] = value

    if conflicts:
        logger.warning("environment_variable_conflicts", conflicts=conflicts)
    return merged


def extract_component_id(namespaced_variable: str) -> str:
    """Everything before the last ``_`` segment."""
    prefix, sep, _ = namespaced_variable.rpartition("_")
    return prefix if sep and prefix else namespaced_variable
