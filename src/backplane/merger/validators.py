"""
Conflict detection and validation for merged configurations.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Mapping, Sequence

from backplane.merger.strategies import MergeContext, value_key

ConflictType = Literal["value", "type", "incompatible", "limit-exceeded"]
SchemaType = Literal["string", "number", "boolean", "array", "object", "enum"]


@dataclass(frozen=True)
class ConfigIssue:
    """A single validation failure at a config path."""

    message: str
    path: str
    source: str | None = None
    actual_value: Any = None
    expected: str | None = None
    code: str | None = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True)
class CheckResult:
    errors: tuple[ConfigIssue, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    @classmethod
    def collect(cls, results: Sequence[CheckResult]) -> CheckResult:
        return cls(
            errors=tuple(e for r in results for e in r.errors),
            warnings=tuple(w for r in results for w in r.warnings),
        )


@dataclass(frozen=True)
class FieldContext:
    """Where a value being validated lives."""

    path: str
    source: str
    full_config: Mapping[str, Any] = field(default_factory=dict)

    def at(self, path: str) -> FieldContext:
        return FieldContext(path, self.source, self.full_config)


FieldValidator = Callable[[Any, FieldContext], CheckResult]


@dataclass(frozen=True)
class ConflictValue:
    value: Any
    source: str
    priority: int


@dataclass(frozen=True)
class ConfigConflict:
    path: str
    values: tuple[ConflictValue, ...]
    conflict_type: ConflictType
    resolvable: bool
    reason: str | None = None
    suggested_strategy: str | None = None


@dataclass(frozen=True)
class IncompatibilityRule:
    """A condition on the merged config that makes it unusable."""

    path: str
    conflicting_paths: tuple[str, ...]
    condition: Callable[[Mapping[str, Any]], bool]
    reason: str
    suggestion: str | None = None


def get_nested_value(config: Mapping[str, Any], path: str) -> Any:
    current: Any = config
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


class ConflictDetector:
    """Finds value, type and rule-based conflicts between config values."""

    def detect_conflicts(
        self, values: Sequence[Any], context: MergeContext
    ) -> List[ConfigConflict]:
        """
        Different values at one path conflict. The conflict is resolvable
        only when the sources have different priorities.
        """
        entries = [
            ConflictValue(value, context.sources[i], context.priorities[i])
            for i, value in enumerate(values)
            if value is not None
        ]
        if len({value_key(e.value) for e in entries}) < 2:
            return []

        same_priority = len({e.priority for e in entries}) == 1
        return [
            ConfigConflict(
                path=context.path,
                values=tuple(entries),
                conflict_type="value",
                resolvable=not same_priority,
                reason=(
                    f"Multiple sources with same priority ({entries[0].priority}) "
                    "have different values"
                    if same_priority
                    else "Values differ but can be resolved by priority"
                ),
                suggested_strategy="manual-resolution" if same_priority else "priority",
            )
        ]

    def detect_type_conflicts(
        self, values: Sequence[Any], context: MergeContext
    ) -> List[ConfigConflict]:
        types = dict.fromkeys(type_name(v) for v in values if v is not None)
        if len(types) < 2:
            return []
        return [
            ConfigConflict(
                path=context.path,
                values=tuple(
                    ConflictValue(v, context.sources[i], context.priorities[i])
                    for i, v in enumerate(values)
                ),
                conflict_type="type",
                resolvable=False,
                reason=f"Incompatible types: {', '.join(types)}",
                suggested_strategy="manual-resolution",
            )
        ]

    def detect_incompatibilities(
        self, config: Mapping[str, Any], rules: Sequence[IncompatibilityRule]
    ) -> List[ConfigConflict]:
        conflicts = []
        for rule in rules:
            if not rule.condition(config):
                continue
            conflicts.append(
                ConfigConflict(
                    path=rule.path,
                    values=tuple(
                        ConflictValue(get_nested_value(config, p), "merged-config", 0)
                        for p in rule.conflicting_paths
                    ),
                    conflict_type="incompatible",
                    resolvable=False,
                    reason=rule.reason,
                    suggested_strategy=rule.suggestion,
                )
            )
        return conflicts


@dataclass(frozen=True)
class ConfigSchema:
    """Small structural schema for one config path."""

    type: SchemaType
    required: bool = False
    enum: tuple[Any, ...] = ()
    items: ConfigSchema | None = None
    properties: Mapping[str, ConfigSchema] | None = None
    validators: tuple[FieldValidator, ...] = ()
    description: str | None = None


class ConfigValidator:
    """Validates merged configs against registered schemas and validators."""

    def __init__(self) -> None:
        self._schemas: Dict[str, ConfigSchema] = {}
        self._validators: Dict[str, List[FieldValidator]] = {}

    def register_schema(self, path: str, schema: ConfigSchema) -> None:
        self._schemas[path] = schema

    def register_validator(self, path: str, validator: FieldValidator) -> None:
        self._validators.setdefault(path, []).append(validator)

    def validate_against_schema(
        self, value: Any, schema: ConfigSchema, context: FieldContext
    ) -> CheckResult:
        if value is None:
            if schema.required:
                return CheckResult(
                    errors=(
                        ConfigIssue(
                            "Required field is missing",
                            context.path,
                            context.source,
                            expected=f"Non-null value of type {schema.type}",
                            code="REQUIRED_FIELD_MISSING",
                        ),
                    )
                )
            return CheckResult()

        results: List[CheckResult] = []
        if schema.type == "enum":
            if value not in schema.enum:
                results.append(
                    _fail(
                        "Value is not a valid enum value",
                        context,
                        value,
                        f"One of: {', '.join(str(e) for e in schema.enum)}",
                        "INVALID_ENUM_VALUE",
                    )
                )
        elif type_name(value) != schema.type:
            results.append(
                _fail("Type mismatch", context, value, f"Type: {schema.type}", "TYPE_MISMATCH")
            )

        if schema.type == "array" and schema.items and isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                results.append(
                    self.validate_against_schema(
                        item, schema.items, context.at(f"{context.path}[{i}]")
                    )
                )

        if schema.type == "object" and schema.properties and isinstance(value, Mapping):
            for key, sub_schema in schema.properties.items():
                results.append(
                    self.validate_against_schema(
                        value.get(key), sub_schema, context.at(f"{context.path}.{key}")
                    )
                )

        for validator in schema.validators:
            results.append(validator(value, context))

        return CheckResult.collect(results)

    def validate(self, config: Mapping[str, Any], source: str = "merged-config") -> CheckResult:
        results: List[CheckResult] = []
        for path, schema in self._schemas.items():
            context = FieldContext(path, source, config)
            results.append(
                self.validate_against_schema(get_nested_value(config, path), schema, context)
            )
        for path, validators in self._validators.items():
            context = FieldContext(path, source, config)
            value = get_nested_value(config, path)
            # Absent values are the schema's concern (``required``)
            if value is not None:
                results.extend(validator(value, context) for validator in validators)
        return CheckResult.collect(results)


def _fail(
    message: str, context: FieldContext, value: Any, expected: str, code: str
) -> CheckResult:
    return CheckResult(
        errors=(ConfigIssue(message, context.path, context.source, value, expected, code),)
    )


# Reusable field validators

_RESOURCE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?$")
_STORAGE_ACCOUNT_PATTERN = re.compile(r"^[a-z0-9]+$")


def resource_name(min_length: int = 1, max_length: int = 260) -> FieldValidator:
    def check(value: Any, context: FieldContext) -> CheckResult:
        results = []
        if not min_length <= len(value) <= max_length:
            results.append(
                _fail(
                    f"Resource name length must be between {min_length} "
                    f"and {max_length} characters",
                    context,
                    value,
                    f"Length: {min_length}-{max_length}",
                    "INVALID_LENGTH",
                )
            )
        if not _RESOURCE_NAME_PATTERN.match(value):
            results.append(
                _fail(
                    "Resource name must start and end with alphanumeric, contain only "
                    "alphanumeric, hyphens, underscores, and periods",
                    context,
                    value,
                    f"Pattern: {_RESOURCE_NAME_PATTERN.pattern}",
                    "INVALID_PATTERN",
                )
            )
        return CheckResult.collect(results)

    return check


def storage_account_name() -> FieldValidator:
    def check(value: Any, context: FieldContext) -> CheckResult:
        results = []
        if not 3 <= len(value) <= 24:
            results.append(
                _fail(
                    "Storage account name must be 3-24 characters",
                    context,
                    value,
                    "Length: 3-24",
                    "INVALID_LENGTH",
                )
            )
        if not _STORAGE_ACCOUNT_PATTERN.match(value):
            results.append(
                _fail(
                    "Storage account name must contain only lowercase letters and numbers",
                    context,
                    value,
                    "Pattern: lowercase letters and numbers only",
                    "INVALID_PATTERN",
                )
            )
        return CheckResult.collect(results)

    return check


def number_range(minimum: float, maximum: float) -> FieldValidator:
    def check(value: Any, context: FieldContext) -> CheckResult:
        if minimum <= value <= maximum:
            return CheckResult()
        return _fail(
            f"Value must be between {minimum} and {maximum}",
            context,
            value,
            f"Range: {minimum}-{maximum}",
            "OUT_OF_RANGE",
        )

    return check


def array_length(minimum: int, maximum: int) -> FieldValidator:
    def check(value: Any, context: FieldContext) -> CheckResult:
        if minimum <= len(value) <= maximum:
            return CheckResult()
        return _fail(
            f"Array length must be between {minimum} and {maximum}",
            context,
            len(value),
            f"Length: {minimum}-{maximum}",
            "INVALID_LENGTH",
        )

    return check


def pattern(regex: str | re.Pattern[str], description: str) -> FieldValidator:
    compiled = re.compile(regex)

    def check(value: Any, context: FieldContext) -> CheckResult:
        if compiled.search(value):
            return CheckResult()
        return _fail(
            f"Value does not match {description}", context, value, description, "INVALID_PATTERN"
        )

    return check
