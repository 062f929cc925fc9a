"""
Provider for resource types without a typed config model.

Configs stay plain mappings and are merged by the generic
ConfigurationMerger in strict mode, so any unresolvable conflict fails the
merge.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping, Sequence

from backplane.merger import ConfigurationMerger
from backplane.models import ResourceRequirement, ValidationResult
from backplane.providers.base import BaseProvider, ProviderContext
from backplane.scope import Scope

ProvisionFn = Callable[[Scope, str, Mapping[str, Any], ProviderContext], Any]
ConfigCheckFn = Callable[[Mapping[str, Any]], ValidationResult]


class GenericProvider(BaseProvider[Dict[str, Any]]):
    """
    Untyped provider backed by caller-supplied callables.

    ``provision(scope, name, config, context)`` creates the resource; when
    omitted, a ``ProvisionedResource`` handle with its own child scope is
    returned. ``validate(config)`` optionally checks merged configs.
    """

    def __init__(
        self,
        provider_id: str,
        supported_types: Iterable[str],
        provision: ProvisionFn | None = None,
        validate: ConfigCheckFn | None = None,
        merger: ConfigurationMerger | None = None,
        merge_limit: int | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.supported_types = tuple(supported_types)
        self.resource_type = self.supported_types[0] if self.supported_types else ""
        self.merge_limit = merge_limit
        self.merger = merger or ConfigurationMerger(strict=True)
        self._provision = provision
        self._validate = validate

    def parse_config(self, config: Mapping[str, Any]) -> Dict[str, Any]:
        return dict(config)

    def dump_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return dict(config)

    def can_merge(self, first: Dict[str, Any], second: Dict[str, Any]) -> bool:
        return True

    def merge_configs(self, configs: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        return self.merger.merge_configs(configs).config

    def merge_group(self, requirements: Sequence[ResourceRequirement]) -> Dict[str, Any]:
        # Requirements carry source and priority, which the merger uses
        return self.merger.merge_requirements(requirements).config

    def validate_config(self, config: Dict[str, Any]) -> ValidationResult:
        if self._validate is None:
            return ValidationResult.ok()
        return self._validate(config)

    def provision(
        self, scope: Scope, name: str, config: Dict[str, Any], context: ProviderContext
    ) -> Any:
        if self._provision is None:
            return self.create_handle(scope, name, config, context)
        return self._provision(scope, name, config, context)
