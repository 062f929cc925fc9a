"""Tests for the generic configuration merger."""

from __future__ import annotations

import re

import pytest
from backplane.core.errors import MergeError
from backplane.merger import (
    ConfigSchema,
    ConfigurationMerger,
    ConfigValidator,
    ConflictDetector,
    CustomMergeStrategy,
    FieldContext,
    IncompatibilityRule,
    MergeContext,
    MergeOutcome,
    MergeStrategy,
    MergeStrategyRegistry,
    array_length,
    extract_component_id,
    intersection_strategy,
    maximum_strategy,
    merge_namespaced_environment_variables,
    minimum_strategy,
    namespace_env_var,
    number_range,
    object_merge_strategy,
    pattern,
    priority_strategy,
    resource_name,
    storage_account_name,
    union_strategy,
)
from backplane.models import RequirementMetadata, ResourceRequirement


def ctx(path="config.value", sources=("a", "b"), priorities=(10, 10)) -> MergeContext:
    return MergeContext(path=path, sources=tuple(sources), priorities=tuple(priorities))


def field_ctx(path="name") -> FieldContext:
    return FieldContext(path, "test")


# -------------------------------------------------------------------------
# Strategies
# -------------------------------------------------------------------------


class TestStrategies:
    def test_union_keeps_first_occurrence(self) -> None:
        outcome = union_strategy([[1, {"a": 1}], [{"a": 1}, 3]], ctx())

        assert outcome.value == [1, {"a": 1}, 3]
        assert outcome.strategy is MergeStrategy.UNION

    def test_intersection(self) -> None:
        outcome = intersection_strategy(
            [[1, 2, 3], [3, 2], [2, 3]], ctx(sources=("a", "b", "c"), priorities=(0, 0, 0))
        )

        assert outcome.value == [2, 3]
        assert outcome.warnings == (
            "Value 1 from a not present in b, excluding from intersection at config.value",
        )

    def test_empty_intersection_warns(self) -> None:
        outcome = intersection_strategy([[1], [2]], ctx())

        assert outcome.value == []
        assert "resulted in empty list" in outcome.warnings[-1]

    def test_maximum_and_minimum(self) -> None:
        context = ctx(sources=("a", "b", "c"), priorities=(0, 0, 0))

        highest = maximum_strategy([1, 5, 3], context)
        lowest = minimum_strategy([4, 2, 2], context)

        assert (highest.value, highest.sources) == (5, ("b",))
        assert (lowest.value, lowest.sources) == (2, ("b",))
        assert highest.warnings[0].startswith("Selected maximum value 5 from b")

    def test_extremes_reject_empty(self) -> None:
        with pytest.raises(ValueError):
            maximum_strategy([], ctx())

    def test_priority_picks_highest(self) -> None:
        outcome = priority_strategy(["low", "high"], ctx(priorities=(1, 9)))

        assert outcome.value == "high"
        assert outcome.sources == ("b",)
        assert "overriding 1 lower priority value(s)" in outcome.warnings[0]

    def test_priority_tie_keeps_first_and_warns(self) -> None:
        outcome = priority_strategy(["x", "y"], ctx())

        assert outcome.value == "x"
        assert outcome.warnings[0].startswith("Conflict at config.value")

    def test_priority_agreement_is_silent(self) -> None:
        assert priority_strategy(["x", "x"], ctx()).warnings == ()

    def test_object_merge_uses_path_and_wildcard_handlers(self) -> None:
        outcome = object_merge_strategy(
            [{"ports": [80], "size": 1, "name": "a"}, {"ports": [443], "size": 4, "name": "a"}],
            ctx(path="config.host"),
            {"config.host.ports": union_strategy, "*.size": maximum_strategy},
        )

        assert outcome.value == {"ports": [80, 443], "size": 4, "name": "a"}

    def test_object_merge_drops_failing_keys(self) -> None:
        outcome = object_merge_strategy(
            [{"size": "big"}, {"size": 3}],
            ctx(path="config.host"),
            {"*.size": maximum_strategy},
        )

        assert outcome.value == {}
        assert outcome.warnings[0].startswith("Failed to merge property config.host.size")


class TestStrategyRegistry:
    def test_exact_before_pattern(self) -> None:
        def exact(values, context):
            return MergeOutcome("exact", MergeStrategy.CUSTOM)

        def by_pattern(values, context):
            return MergeOutcome("pattern", MergeStrategy.CUSTOM)

        registry = MergeStrategyRegistry()
        registry.register(CustomMergeStrategy(re.compile(r"\.limits\."), by_pattern))
        registry.register(CustomMergeStrategy("config.limits.cpu", exact))

        assert registry.find("config.limits.cpu").handler is exact
        assert registry.find("config.limits.memory").handler is by_pattern
        assert registry.find("config.name") is None
        assert len(registry) == 2

        registry.clear()
        assert registry.all() == []


# -------------------------------------------------------------------------
# Conflicts and validation
# -------------------------------------------------------------------------


class TestConflictDetector:
    def test_same_priority_unresolvable(self) -> None:
        (conflict,) = ConflictDetector().detect_conflicts(["a", "b"], ctx())

        assert conflict.conflict_type == "value"
        assert not conflict.resolvable
        assert conflict.suggested_strategy == "manual-resolution"

    def test_different_priorities_resolvable(self) -> None:
        (conflict,) = ConflictDetector().detect_conflicts(["a", "b"], ctx(priorities=(1, 2)))

        assert conflict.resolvable

    def test_equal_values_do_not_conflict(self) -> None:
        assert ConflictDetector().detect_conflicts([{"a": 1}, {"a": 1}], ctx()) == []

    def test_type_conflicts(self) -> None:
        (conflict,) = ConflictDetector().detect_type_conflicts(["1", 1], ctx())

        assert conflict.conflict_type == "type"
        assert conflict.reason == "Incompatible types: string, number"

    def test_incompatibilities(self) -> None:
        rule = IncompatibilityRule(
            path="serverless",
            conflicting_paths=("serverless", "replicas.count"),
            condition=lambda config: config.get("serverless") and config["replicas"]["count"] > 1,
            reason="serverless cannot replicate",
        )

        (conflict,) = ConflictDetector().detect_incompatibilities(
            {"serverless": True, "replicas": {"count": 3}}, [rule]
        )

        assert [v.value for v in conflict.values] == [True, 3]
        assert not conflict.resolvable


class TestConfigValidator:
    def test_schema_checks(self) -> None:
        validator = ConfigValidator()
        validator.register_schema("name", ConfigSchema("string", required=True))
        validator.register_schema("tier", ConfigSchema("enum", enum=("hot", "cool")))
        validator.register_schema(
            "ports", ConfigSchema("array", items=ConfigSchema("number"))
        )

        result = validator.validate({"tier": "warm", "ports": [80, "443"]})

        assert [(e.path, e.code) for e in result.errors] == [
            ("name", "REQUIRED_FIELD_MISSING"),
            ("tier", "INVALID_ENUM_VALUE"),
            ("ports[1]", "TYPE_MISMATCH"),
        ]

    def test_nested_properties(self) -> None:
        validator = ConfigValidator()
        validator.register_schema(
            "network",
            ConfigSchema("object", properties={"subnet": ConfigSchema("string", required=True)}),
        )

        (error,) = validator.validate({"network": {}}).errors

        assert str(error) == "network.subnet: Required field is missing"

    def test_registered_validators_skip_absent_values(self) -> None:
        validator = ConfigValidator()
        validator.register_validator("limits.cpu", number_range(1, 8))

        assert validator.validate({}).valid
        assert validator.validate({"limits": {"cpu": 4}}).valid
        assert not validator.validate({"limits": {"cpu": 16}}).valid


class TestFieldValidators:
    def test_resource_name(self) -> None:
        check = resource_name(3, 10)

        assert check("my-app.1", field_ctx()).valid
        codes = [e.code for e in check("-a", field_ctx()).errors]
        assert codes == ["INVALID_LENGTH", "INVALID_PATTERN"]

    def test_storage_account_name(self) -> None:
        check = storage_account_name()

        assert check("myaccount01", field_ctx()).valid
        assert not check("My-Account", field_ctx()).valid
        assert not check("ab", field_ctx()).valid

    def test_array_length(self) -> None:
        check = array_length(1, 2)

        assert check([1], field_ctx()).valid
        assert check([1, 2, 3], field_ctx()).errors[0].actual_value == 3

    def test_pattern(self) -> None:
        check = pattern(r"^v\d+$", "a version tag")

        assert check("v2", field_ctx()).valid
        assert check("two", field_ctx()).errors[0].message == "Value does not match a version tag"


# -------------------------------------------------------------------------
# ConfigurationMerger
# -------------------------------------------------------------------------


class TestConfigurationMerger:
    @pytest.mark.parametrize(
        "path, strategy",
        [
            ("config.environment_variables", MergeStrategy.UNION),
            ("config.capabilities", MergeStrategy.UNION),
            ("config.max_memory_mb", MergeStrategy.MAXIMUM),
            ("config.required_features", MergeStrategy.INTERSECTION),
            ("config.tags.memory_class", MergeStrategy.MAXIMUM),
            ("config.sku", MergeStrategy.PRIORITY),
        ],
    )
    def test_strategy_for_path(self, path, strategy) -> None:
        assert ConfigurationMerger().strategy_for_path(path) is strategy

    def test_custom_strategy_wins(self) -> None:
        def join(values, context):
            return MergeOutcome("+".join(values), MergeStrategy.CUSTOM, context.sources)

        merger = ConfigurationMerger(custom_strategies=[CustomMergeStrategy("config.sku", join)])

        result = merger.merge_configs([{"sku": "a"}, {"sku": "b"}])

        assert merger.strategy_for_path("config.sku") is MergeStrategy.CUSTOM
        assert result.config == {"sku": "a+b"}
        assert result.success

    def test_nested_mappings_merge_key_by_key(self) -> None:
        result = ConfigurationMerger().merge_configs(
            [{"network": {"subnet": "a", "size": 16}}, {"network": {"size": 24, "dns": True}}]
        )

        assert result.config == {"network": {"subnet": "a", "size": 24, "dns": True}}

    def test_inputs_not_mutated(self) -> None:
        first = {"capabilities": ["a"], "network": {"size": 1}}
        second = {"capabilities": ["b"], "network": {"size": 2}}

        result = ConfigurationMerger().merge_configs([first, second])
        result.config["capabilities"].append("c")

        assert first == {"capabilities": ["a"], "network": {"size": 1}}
        assert second == {"capabilities": ["b"], "network": {"size": 2}}

    def test_inapplicable_heuristic_falls_back_to_priority(self) -> None:
        result = ConfigurationMerger().merge_configs(
            [{"memory": "1G"}, {"memory": "2G"}], priorities=[5, 1]
        )

        assert result.config == {"memory": "1G"}
        assert any("maximum strategy does not apply" in w for w in result.warnings)

    def test_unresolvable_conflicts_reported(self) -> None:
        result = ConfigurationMerger().merge_configs([{"sku": "a"}, {"sku": "b"}])

        assert not result.success
        assert [c.path for c in result.unresolvable_conflicts] == ["config.sku"]
        assert result.config == {"sku": "a"}

    def test_resolvable_conflicts_kept_separately(self) -> None:
        result = ConfigurationMerger().merge_configs(
            [{"sku": "a"}, {"sku": "b"}], sources=["UserApi", "OrderApi"], priorities=[1, 2]
        )

        assert result.success
        assert result.config == {"sku": "b"}
        assert result.conflicts[0].values[1].source == "OrderApi"

    def test_type_conflicts_are_unresolvable(self) -> None:
        result = ConfigurationMerger().merge_configs(
            [{"port": 80}, {"port": "80"}], priorities=[2, 1]
        )

        assert [c.conflict_type for c in result.unresolvable_conflicts] == ["type"]

    def test_strict_mode_raises(self) -> None:
        merger = ConfigurationMerger(strict=True)

        with pytest.raises(MergeError) as exc_info:
            merger.merge_configs([{"sku": "a"}, {"sku": "b"}], sources=["UserApi", "OrderApi"])

        assert "Unresolvable Conflicts:" in exc_info.value.message
        assert "UserApi: 'a'" in exc_info.value.message

    def test_validators_and_incompatibility_rules(self) -> None:
        merger = ConfigurationMerger(
            validators={"name": resource_name(3, 10)},
            incompatibility_rules=[
                IncompatibilityRule(
                    path="tier",
                    conflicting_paths=("tier", "replicas"),
                    condition=lambda c: c.get("tier") == "free" and c.get("replicas", 0) > 1,
                    reason="free tier has one replica",
                )
            ],
        )

        result = merger.merge_configs([{"name": "x", "tier": "free"}, {"replicas": 3}])

        assert result.errors[0].path == "name"
        assert result.unresolvable_conflicts[0].reason == "free tier has one replica"
        assert not result.success

    def test_tracing(self) -> None:
        merger = ConfigurationMerger(tracing=True)

        result = merger.merge_configs(
            [{"retention": 7}, {"retention": 30}], sources=["UserApi", "OrderApi"]
        )

        (trace,) = result.trace
        assert trace.path == "config.retention"
        assert trace.strategy is MergeStrategy.MAXIMUM
        assert trace.output == 30
        assert [i.source for i in trace.inputs] == ["UserApi", "OrderApi"]
        assert merger.get_traces() == result.trace

        merger.clear_traces()
        assert merger.get_traces() == ()

    def test_tracing_disabled(self) -> None:
        assert ConfigurationMerger().merge_configs([{"a": 1}, {"a": 1}]).trace is None

    def test_merge_requirements_uses_sources_and_priorities(self) -> None:
        requirements = [
            ResourceRequirement(
                "queue", "jobs", {"sku": "basic"}, 1, RequirementMetadata(source="UserApi")
            ),
            ResourceRequirement(
                "queue", "jobs", {"sku": "premium"}, 9, RequirementMetadata(source="OrderApi")
            ),
        ]

        result = ConfigurationMerger().merge_requirements(requirements)

        assert result.config == {"sku": "premium"}
        assert [v.source for v in result.conflicts[0].values] == ["UserApi", "OrderApi"]

    def test_merge_requirements_edge_cases(self) -> None:
        merger = ConfigurationMerger()
        single = ResourceRequirement("queue", "jobs", {"nested": {"a": 1}})

        assert merger.merge_requirements([]).config == {}
        copied = merger.merge_requirements([single]).config
        assert copied == {"nested": {"a": 1}}
        assert copied["nested"] is not single.config["nested"]


# -------------------------------------------------------------------------
# Environment variables
# -------------------------------------------------------------------------


class TestEnvironmentVariables:
    @pytest.mark.parametrize(
        "component_id, name, expected",
        [
            ("UserApi", "table", "USER_API_TABLE"),
            ("user-api", "db.url", "USER_API_DB_URL"),
            ("API", "KEY", "API_KEY"),
        ],
    )
    def test_namespace_env_var(self, component_id, name, expected) -> None:
        assert namespace_env_var(component_id, name) == expected

    def test_merge_namespaced(self) -> None:
        requirements = [
            ResourceRequirement(
                "functions",
                "api",
                {"environment_variables": {"TABLE": "users"}},
                metadata=RequirementMetadata(source="UserApi"),
            ),
            ResourceRequirement(
                "functions", "api", {"environment_variables": {"TABLE": "orphans"}}
            ),
        ]

        assert merge_namespaced_environment_variables(requirements) == {
            "USER_API_TABLE": "users",
            "UNKNOWN_TABLE": "orphans",
        }

    def test_later_value_wins(self) -> None:
        requirements = [
            ResourceRequirement(
                "functions",
                "api",
                {"environment_variables": {"TABLE": value}},
                metadata=RequirementMetadata(source="UserApi"),
            )
            for value in ("users", "people")
        ]

        assert merge_namespaced_environment_variables(requirements) == {
            "USER_API_TABLE": "people"
        }

    def test_extract_component_id(self) -> None:
        assert extract_component_id("USER_API_TABLE") == "USER_API"
        assert extract_component_id("PLAIN") == "PLAIN"
