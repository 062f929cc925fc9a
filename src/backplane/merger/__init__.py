"""
Generic configuration merging.

Provides:
- Merge strategies (union, intersection, maximum, minimum, priority, object)
- Conflict detection and config validation
- ConfigurationMerger for untyped requirement configs
- Environment variable namespacing
"""

from backplane.merger.configuration import (
    ConfigurationMerger,
    MergedConfiguration,
    MergeTrace,
    TraceInput,
    format_merge_failure,
)
from backplane.merger.environment import (
    extract_component_id,
    merge_namespaced_environment_variables,
    namespace_env_var,
)
from backplane.merger.strategies import (
    CustomMergeStrategy,
    MergeContext,
    MergeOutcome,
    MergeStrategy,
    MergeStrategyRegistry,
    StrategyHandler,
    intersection_strategy,
    maximum_strategy,
    minimum_strategy,
    object_merge_strategy,
    priority_strategy,
    union_strategy,
)
from backplane.merger.validators import (
    CheckResult,
    ConfigConflict,
    ConfigIssue,
    ConfigSchema,
    ConfigValidator,
    ConflictDetector,
    ConflictValue,
    FieldContext,
    FieldValidator,
    IncompatibilityRule,
    array_length,
    number_range,
    pattern,
    resource_name,
    storage_account_name,
)

__all__ = [
    # Merger
    "ConfigurationMerger",
    "MergedConfiguration",
    "MergeTrace",
    "TraceInput",
    "format_merge_failure",
    # Strategies
    "MergeStrategy",
    "MergeContext",
    "MergeOutcome",
    "StrategyHandler",
    "CustomMergeStrategy",
    "MergeStrategyRegistry",
    "union_strategy",
    "intersection_strategy",
    "maximum_strategy",
    "minimum_strategy",
    "priority_strategy",
    "object_merge_strategy",
    # Validation
    "CheckResult",
    "ConfigConflict",
    "ConflictValue",
    "ConfigIssue",
    "ConfigSchema",
    "ConfigValidator",
    "ConflictDetector",
    "FieldContext",
    "FieldValidator",
    "IncompatibilityRule",
    "array_length",
    "number_range",
    "pattern",
    "resource_name",
    "storage_account_name",
    # Environment variables
    "namespace_env_var",
    "merge_namespaced_environment_variables",
    "extract_component_id",
]
