"""
Merge strategies.

Each strategy takes the competing values for one config path plus a
``MergeContext`` (where the values came from and their priorities) and
returns a ``MergeOutcome``. Strategies are pure: inputs are never mutated.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Dict, List, Mapping, Pattern, Sequence


class MergeStrategy(StrEnum):
    UNION = "union"
    INTERSECTION = "intersection"
    MAXIMUM = "maximum"
    MINIMUM = "minimum"
    PRIORITY = "priority"
    CUSTOM = "custom"


@dataclass(frozen=True)
class MergeContext:
    """Where the values being merged at ``path`` came from."""

    path: str
    sources: tuple[str, ...]
    priorities: tuple[int, ...]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def narrow(self, path: str, indices: Sequence[int]) -> MergeContext:
        """Context for a sub-path, keeping only the given value positions."""
        return MergeContext(
            path=path,
            sources=tuple(self.sources[i] for i in indices),
            priorities=tuple(self.priorities[i] for i in indices),
            metadata=self.metadata,
        )


@dataclass(frozen=True)
class MergeOutcome:
    value: Any
    strategy: MergeStrategy
    sources: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


StrategyHandler = Callable[[Sequence[Any], MergeContext], MergeOutcome]


def value_key(value: Any) -> str:
    """Stable identity for structural comparison of config values."""
    return json.dumps(value, sort_keys=True, default=str)


def union_strategy(values: Sequence[Sequence[Any]], context: MergeContext) -> MergeOutcome:
    """Concatenate lists, dropping structural duplicates, first occurrence wins."""
    seen: set[str] = set()
    result: List[Any] = []
    for items in values:
        for item in items:
            key = value_key(item)
            if key not in seen:
                seen.add(key)
                result.append(item)
    return MergeOutcome(result, MergeStrategy.UNION, context.sources)


def intersection_strategy(values: Sequence[Sequence[Any]], context: MergeContext) -> MergeOutcome:
    """Keep items of the first list present in every other list."""
    if not values:
        return MergeOutcome([], MergeStrategy.INTERSECTION)
    if len(values) == 1:
        return MergeOutcome(list(values[0]), MergeStrategy.INTERSECTION, context.sources[:1])

    others = [{value_key(item) for item in items} for items in values[1:]]
    result: List[Any] = []
    warnings: List[str] = []
    for item in values[0]:
        key = value_key(item)
        missing_from = [
            context.sources[i + 1] for i, keys in enumerate(others) if key not in keys
        ]
        if missing_from:
            warnings.append(
                f"Value {key} from {context.sources[0]} not present in {missing_from[0]}, "
                f"excluding from intersection at {context.path}"
            )
        else:
            result.append(item)

    if not result:
        warnings.append(
            f"Intersection at {context.path} resulted in empty list. "
            f"Sources: {', '.join(context.sources)}"
        )
    return MergeOutcome(result, MergeStrategy.INTERSECTION, context.sources, tuple(warnings))


def _extreme(
    values: Sequence[float], context: MergeContext, pick_max: bool
) -> MergeOutcome:
    if not values:
        raise ValueError(f"Cannot select from empty values at {context.path}")

    index = 0
    for i, value in enumerate(values[1:], start=1):
        if (value > values[index]) if pick_max else (value < values[index]):
            index = i

    strategy = MergeStrategy.MAXIMUM if pick_max else MergeStrategy.MINIMUM
    warnings: tuple[str, ...] = ()
    if len(values) > 1:
        others = ", ".join(str(v) for i, v in enumerate(values) if i != index)
        warnings = (
            f"Selected {strategy.value} value {values[index]} from {context.sources[index]} "
            f"at {context.path}. Other values: {others}",
        )
    return MergeOutcome(values[index], strategy, (context.sources[index],), warnings)


def maximum_strategy(values: Sequence[float], context: MergeContext) -> MergeOutcome:
    return _extreme(values, context, pick_max=True)


def minimum_strategy(values: Sequence[float], context: MergeContext) -> MergeOutcome:
    return _extreme(values, context, pick_max=False)


def priority_strategy(values: Sequence[Any], context: MergeContext) -> MergeOutcome:
    """
    Pick the value with the highest priority; ties go to the earliest.

    Warns when same-priority sources disagree and when lower-priority
    values are overridden.
    """
    if not values:
        raise ValueError(f"Cannot select from empty values at {context.path}")
    if len(values) == 1:
        return MergeOutcome(values[0], MergeStrategy.PRIORITY, context.sources[:1])

    priorities = context.priorities
    top = max(priorities)
    winner = priorities.index(top)
    winner_key = value_key(values[winner])
    warnings: List[str] = []

    tied = [i for i, p in enumerate(priorities) if p == top]
    if len(tied) > 1 and any(value_key(values[i]) != winner_key for i in tied):
        warnings.append(
            f"Conflict at {context.path}: Multiple sources with priority {top} have "
            f"different values. Using value from {context.sources[winner]}. "
            f"Conflicting sources: {', '.join(context.sources[i] for i in tied)}"
        )

    overridden = [
        i for i, p in enumerate(priorities) if p < top and value_key(values[i]) != winner_key
    ]
    if overridden:
        warnings.append(
            f"Value from {context.sources[winner]} (priority {top}) overriding "
            f"{len(overridden)} lower priority value(s) at {context.path}"
        )

    return MergeOutcome(
        values[winner], MergeStrategy.PRIORITY, (context.sources[winner],), tuple(warnings)
    )


def object_merge_strategy(
    values: Sequence[Mapping[str, Any]],
    context: MergeContext,
    strategies: Mapping[str, StrategyHandler] | None = None,
) -> MergeOutcome:
    """
    Merge mappings key by key.

    Each key uses the handler registered for its full path, then for
    ``*.<key>``, falling back to ``priority_strategy``. A key whose handler
    fails is dropped with a warning.
    """
    if not values:
        raise ValueError(f"Cannot merge empty object list at {context.path}")
    if len(values) == 1:
        return MergeOutcome(dict(values[0]), MergeStrategy.CUSTOM, context.sources[:1])

    strategies = strategies or {}
    result: Dict[str, Any] = {}
    warnings: List[str] = []
    contributors: Dict[str, None] = {}

    keys = dict.fromkeys(key for obj in values for key in obj)
    for key in keys:
        path = f"{context.path}.{key}"
        present = [i for i, obj in enumerate(values) if obj.get(key) is not None]
        if not present:
            continue
        if len(present) == 1:
            result[key] = values[present[0]][key]
            contributors[context.sources[present[0]]] = None
            continue

        handler = strategies.get(path) or strategies.get(f"*.{key}") or priority_strategy
        try:
            outcome = handler([values[i][key] for i in present], context.narrow(path, present))
        except (TypeError, ValueError) as e:
            warnings.append(f"Failed to merge property {path}: {e}")
            continue
        result[key] = outcome.value
        warnings.extend(outcome.warnings)
        contributors.update(dict.fromkeys(outcome.sources))

    return MergeOutcome(result, MergeStrategy.CUSTOM, tuple(contributors), tuple(warnings))


@dataclass(frozen=True)
class CustomMergeStrategy:
    """A handler bound to an exact config path or a path pattern."""

    path: str | Pattern[str]
    handler: StrategyHandler
    description: str | None = None

    @property
    def key(self) -> str:
        return self.path if isinstance(self.path, str) else self.path.pattern


class MergeStrategyRegistry:
    """Custom strategies looked up by exact path first, then by pattern."""

    def __init__(self) -> None:
        self._strategies: Dict[str, CustomMergeStrategy] = {}

    def register(self, strategy: CustomMergeStrategy) -> None:
        self._strategies[strategy.key] = strategy

    def find(self, path: str) -> CustomMergeStrategy | None:
        exact = self._strategies.get(path)
        if exact is not None and isinstance(exact.path, str):
            return exact
        for strategy in self._strategies.values():
            if isinstance(strategy.path, re.Pattern) and strategy.path.search(path):
                return strategy
        return None

    def all(self) -> List[CustomMergeStrategy]:
        return list(self._strategies.values())

    def clear(self) -> None:
        self._strategies.clear()

    def __len__(self) -> int:
        return len(self._strategies)
