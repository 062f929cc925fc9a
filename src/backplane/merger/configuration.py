"""
Generic configuration merger.

Merges the untyped configs of several requirements path by path. Nested
mappings are merged key by key; other values are reconciled by a strategy
chosen from custom registrations, then from the key name, then from the
merger's default. Used by providers that have no typed config model.
"""

from __future__ import annotations

import time
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import structlog

from backplane.core.errors import MergeError
from backplane.merger.strategies import (
    CustomMergeStrategy,
    MergeContext,
    MergeOutcome,
    MergeStrategy,
    MergeStrategyRegistry,
    intersection_strategy,
    maximum_strategy,
    minimum_strategy,
    priority_strategy,
    union_strategy,
)
from backplane.merger.validators import (
    ConfigConflict,
    ConfigIssue,
    ConfigSchema,
    ConfigValidator,
    ConflictDetector,
    FieldValidator,
    IncompatibilityRule,
)
from backplane.models import ResourceRequirement
from backplane.requirements import DEFAULT_REQUIREMENT_PRIORITY, effective_priority

logger = structlog.get_logger()

ROOT_PATH = "config"

# Key-name heuristics, checked in order
_PATH_HEURISTICS: tuple[tuple[MergeStrategy, tuple[str, ...]], ...] = (
    (MergeStrategy.UNION, ("environment_variables", "tags", "capabilities")),
    (MergeStrategy.MAXIMUM, ("memory", "throughput", "size", "retention")),
    (MergeStrategy.INTERSECTION, ("required", "common")),
)


@dataclass(frozen=True)
class TraceInput:
    value: Any
    source: str
    priority: int


@dataclass(frozen=True)
class MergeTrace:
    """How one config path was resolved."""

    path: str
    strategy: MergeStrategy
    inputs: tuple[TraceInput, ...]
    output: Any
    warnings: tuple[str, ...]
    timestamp: float


@dataclass(frozen=True)
class MergedConfiguration:
    config: Dict[str, Any]
    conflicts: tuple[ConfigConflict, ...] = ()
    unresolvable_conflicts: tuple[ConfigConflict, ...] = ()
    errors: tuple[ConfigIssue, ...] = ()
    warnings: tuple[str, ...] = ()
    trace: tuple[MergeTrace, ...] | None = None

    @property
    def success(self) -> bool:
        return not self.unresolvable_conflicts and not self.errors


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigurationMerger:
    """Path-by-path merger for untyped requirement configs."""

    def __init__(
        self,
        default_strategy: MergeStrategy | str = MergeStrategy.PRIORITY,
        strict: bool = False,
        tracing: bool = False,
        custom_strategies: Iterable[CustomMergeStrategy] = (),
        incompatibility_rules: Iterable[IncompatibilityRule] = (),
        validators: Mapping[str, FieldValidator] | None = None,
        schemas: Mapping[str, ConfigSchema] | None = None,
    ) -> None:
        self.default_strategy = MergeStrategy(default_strategy)
        self.strict = strict
        self.tracing = tracing
        self.incompatibility_rules = tuple(incompatibility_rules)

        self._strategies = MergeStrategyRegistry()
        for strategy in custom_strategies:
            self._strategies.register(strategy)

        self._detector = ConflictDetector()
        self._validator = ConfigValidator()
        for path, validator in (validators or {}).items():
            self._validator.register_validator(path, validator)
        for path, schema in (schemas or {}).items():
            self._validator.register_schema(path, schema)

        self._traces: List[MergeTrace] = []

    # Public API

    def merge_requirements(
        self, requirements: Sequence[ResourceRequirement]
    ) -> MergedConfiguration:
        if not requirements:
            return MergedConfiguration(config={})
        if len(requirements) == 1:
            return MergedConfiguration(config=deepcopy(dict(requirements[0].config)))

        return self.merge_configs(
            [r.config for r in requirements],
            sources=[r.source or "unknown" for r in requirements],
            priorities=[effective_priority(r) for r in requirements],
        )

    def merge_configs(
        self,
        configs: Sequence[Mapping[str, Any]],
        sources: Sequence[str] | None = None,
        priorities: Sequence[int] | None = None,
    ) -> MergedConfiguration:
        """Merge raw config mappings; sources and priorities align by position."""
        if self.tracing:
            self._traces.clear()

        context = MergeContext(
            path=ROOT_PATH,
            sources=tuple(sources or (f"source-{i}" for i in range(len(configs)))),
            priorities=tuple(priorities or (DEFAULT_REQUIREMENT_PRIORITY,) * len(configs)),
        )
        conflicts: List[ConfigConflict] = []
        warnings: List[str] = []

        merged = deepcopy(self._merge_objects(configs, context, conflicts, warnings))

        conflicts.extend(
            self._detector.detect_incompatibilities(merged, self.incompatibility_rules)
        )
        check = self._validator.validate(merged)
        warnings.extend(check.warnings)

        result = MergedConfiguration(
            config=merged,
            conflicts=tuple(c for c in conflicts if c.resolvable),
            unresolvable_conflicts=tuple(c for c in conflicts if not c.resolvable),
            errors=check.errors,
            warnings=tuple(warnings),
            trace=tuple(self._traces) if self.tracing else None,
        )

        logger.debug(
            "configuration_merged",
            sources=list(context.sources),
            conflicts=len(conflicts),
            errors=len(check.errors),
            warnings=len(warnings),
        )

        if self.strict and not result.success:
            raise MergeError(
                "Configuration merge failed:\n"
                + format_merge_failure(result.unresolvable_conflicts, result.errors),
                list(configs),
                {
                    "conflicts": [c.path for c in result.unresolvable_conflicts],
                    "errors": [str(e) for e in result.errors],
                },
            )
        return result

    def strategy_for_path(self, path: str) -> MergeStrategy:
        if self._strategies.find(path) is not None:
            return MergeStrategy.CUSTOM
        key = path.rsplit(".", 1)[-1]
        for strategy, markers in _PATH_HEURISTICS:
            if any(marker in key for marker in markers):
                return strategy
        return self.default_strategy

    def get_traces(self) -> tuple[MergeTrace, ...]:
        return tuple(self._traces)

    def clear_traces(self) -> None:
        self._traces.clear()

    # Internals

    def _merge_objects(
        self,
        objects: Sequence[Mapping[str, Any]],
        context: MergeContext,
        conflicts: List[ConfigConflict],
        warnings: List[str],
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        keys = dict.fromkeys(key for obj in objects for key in obj)
        for key in keys:
            path = f"{context.path}.{key}"
            present = [i for i, obj in enumerate(objects) if obj.get(key) is not None]
            if not present:
                continue
            if len(present) == 1:
                result[key] = objects[present[0]][key]
                continue

            values = [objects[i][key] for i in present]
            try:
                result[key] = self._merge_property(
                    values, context.narrow(path, present), conflicts, warnings
                )
            except (TypeError, ValueError) as e:
                warnings.append(f"Failed to merge property {path}: {e}")
        return result

    def _merge_property(
        self,
        values: Sequence[Any],
        context: MergeContext,
        conflicts: List[ConfigConflict],
        warnings: List[str],
    ) -> Any:
        custom = self._strategies.find(context.path)
        if custom is not None:
            outcome = custom.handler(values, context)
        elif all(isinstance(v, Mapping) for v in values):
            return self._merge_objects(values, context, conflicts, warnings)
        else:
            conflicts.extend(self._detector.detect_type_conflicts(values, context))
            outcome = self._apply_strategy(values, context, conflicts, warnings)

        warnings.extend(outcome.warnings)
        if self.tracing:
            self._traces.append(
                MergeTrace(
                    path=context.path,
                    strategy=outcome.strategy,
                    inputs=tuple(
                        TraceInput(v, context.sources[i], context.priorities[i])
                        for i, v in enumerate(values)
                    ),
                    output=outcome.value,
                    warnings=outcome.warnings,
                    timestamp=time.time(),
                )
            )
        return outcome.value

    def _apply_strategy(
        self,
        values: Sequence[Any],
        context: MergeContext,
        conflicts: List[ConfigConflict],
        warnings: List[str],
    ) -> MergeOutcome:
        strategy = self.strategy_for_path(context.path)

        if strategy in (MergeStrategy.UNION, MergeStrategy.INTERSECTION):
            if all(isinstance(v, (list, tuple)) for v in values):
                if strategy is MergeStrategy.UNION:
                    return union_strategy(values, context)
                return intersection_strategy(values, context)
        elif strategy in (MergeStrategy.MAXIMUM, MergeStrategy.MINIMUM):
            if all(_is_number(v) for v in values):
                if strategy is MergeStrategy.MAXIMUM:
                    return maximum_strategy(values, context)
                return minimum_strategy(values, context)

        if strategy not in (MergeStrategy.PRIORITY, MergeStrategy.CUSTOM):
            warnings.append(
                f"{strategy.value} strategy does not apply to values at {context.path}; "
                "using priority"
            )
        conflicts.extend(self._detector.detect_conflicts(values, context))
        return priority_strategy(values, context)


def format_merge_failure(
    conflicts: Sequence[ConfigConflict], errors: Sequence[ConfigIssue]
) -> str:
    lines: List[str] = []
    if conflicts:
        lines.append("Unresolvable Conflicts:")
        for conflict in conflicts:
            lines.append(f"  - {conflict.path}: {conflict.reason}")
            for entry in conflict.values:
                lines.append(f"    {entry.source}: {entry.value!r}")
    if errors:
        lines.append("Validation Errors:")
        for error in errors:
            lines.append(f"  - {error.path}: {error.message}")
            if error.actual_value is not None:
                lines.append(f"    Actual: {error.actual_value!r}")
            if error.expected:
                lines.append(f"    Expected: {error.expected}")
    return "\n".join(lines)
