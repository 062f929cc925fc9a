"""Tests for requirement and validation result models."""

from __future__ import annotations

import pytest
from backplane.core.errors import RequirementError, ValidationError
from backplane.models import RequirementMetadata, ResourceRequirement, ValidationResult


class TestResourceRequirement:
    def test_resource_key(self) -> None:
        req = ResourceRequirement("cosmos", "shared")
        assert req.resource_key == "cosmos:shared"
        assert req.config == {}
        assert req.source is None

    @pytest.mark.parametrize(
        "resource_type, requirement_key", [("", "shared"), ("cosmos", "")]
    )
    def test_both_parts_required(self, resource_type: str, requirement_key: str) -> None:
        with pytest.raises(RequirementError):
            ResourceRequirement(resource_type, requirement_key)

    def test_config_must_be_mapping(self) -> None:
        with pytest.raises(RequirementError, match="mapping"):
            ResourceRequirement("cosmos", "shared", ["not", "a", "map"])  # type: ignore[arg-type]

    def test_is_immutable(self) -> None:
        req = ResourceRequirement("cosmos", "shared")
        with pytest.raises(AttributeError):
            req.priority = 5  # type: ignore[misc]

    def test_with_metadata_returns_copy(self) -> None:
        req = ResourceRequirement("cosmos", "shared", {"kind": "a"})

        tagged = req.with_metadata(RequirementMetadata(source="UserApi"))

        assert tagged.source == "UserApi"
        assert tagged.metadata.version == "1.0"
        assert req.metadata is None

    def test_dict_round_trip(self) -> None:
        req = ResourceRequirement(
            "storage",
            "files",
            {"containers": [{"name": "uploads"}]},
            priority=20,
            metadata=RequirementMetadata(source="UserApi", description="uploads"),
        )

        assert ResourceRequirement.from_dict(req.to_dict()) == req


class TestValidationResult:
    def test_ok(self) -> None:
        result = ValidationResult.ok(["heads up"])
        assert result.valid
        assert result.errors == ()
        assert result.warnings == ("heads up",)

    def test_from_messages(self) -> None:
        assert ValidationResult.from_messages([]).valid
        assert not ValidationResult.from_messages(["broken"]).valid

    def test_combine_keeps_everything(self) -> None:
        combined = ValidationResult.combine(
            ValidationResult.ok(["w1"]),
            ValidationResult.failed(["e1"], ["w2"]),
            ValidationResult.failed(["e2"]),
        )

        assert not combined.valid
        assert combined.errors == ("e1", "e2")
        assert combined.warnings == ("w1", "w2")

    def test_raise_for_errors_carries_full_list(self) -> None:
        result = ValidationResult.failed(["e1", "e2"], ["w"])

        with pytest.raises(ValidationError) as exc_info:
            result.raise_for_errors()

        assert exc_info.value.errors == ("e1", "e2")
        assert exc_info.value.warnings == ("w",)

    def test_raise_for_errors_when_valid(self) -> None:
        ValidationResult.ok().raise_for_errors()

    def test_to_dict(self) -> None:
        assert ValidationResult.failed(["e"]).to_dict() == {
            "valid": False,
            "errors": ["e"],
            "warnings": [],
        }
