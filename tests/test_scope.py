"""Tests for the in-memory scope tree and backend context."""

from __future__ import annotations

import pytest
from backplane.scope import (
    BACKEND_CONTEXT_KEY,
    BackendContext,
    ConstructScope,
    Scope,
    backend_context,
    get_backend_id,
    is_backend_managed,
    mark_backend_managed,
)


class TestConstructScope:
    def test_implements_scope_protocol(self) -> None:
        assert isinstance(ConstructScope("app"), Scope)

    def test_name_required(self) -> None:
        with pytest.raises(ValueError):
            ConstructScope("")

    def test_children_and_path(self) -> None:
        root = ConstructScope("app")
        child = root.create_child("data")
        grandchild = child.create_child("cosmos")

        assert grandchild.path == "app/data/cosmos"
        assert grandchild.parent is child
        assert root.find_child("data") is child
        assert root.find_child("missing") is None
        assert [s.name for s in root.walk()] == ["app", "data", "cosmos"]

    def test_duplicate_child_rejected(self) -> None:
        root = ConstructScope("app")
        root.create_child("data")

        with pytest.raises(ValueError, match="already has a child"):
            root.create_child("data")

    def test_context_values(self) -> None:
        scope = ConstructScope("app")
        assert scope.get_context("team") is None

        scope.set_context("team", "platform")
        assert scope.get_context("team") == "platform"


class TestBackendContext:
    def test_unmarked_scope(self, scope) -> None:
        assert not is_backend_managed(scope)
        assert backend_context(scope) is None
        assert get_backend_id(scope) is None

    def test_marked_scope(self, scope) -> None:
        mark_backend_managed(scope, BackendContext("Shop", environment="prod"))

        assert is_backend_managed(scope)
        assert get_backend_id(scope) == "Shop"
        assert backend_context(scope).environment == "prod"

    def test_children_are_not_implicitly_managed(self, scope) -> None:
        """Only scopes the backend marks itself count as managed."""
        mark_backend_managed(scope, BackendContext("Shop"))

        assert not is_backend_managed(scope.create_child("elsewhere"))

    def test_foreign_values_under_the_key_are_ignored(self, scope) -> None:
        scope.set_context(BACKEND_CONTEXT_KEY, True)

        assert not is_backend_managed(scope)
