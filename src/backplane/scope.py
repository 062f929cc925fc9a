"""
Scope capability and backend context.

The backend talks to the surrounding construct tree through exactly two
primitives: create a named child scope, and get/set a string-keyed context
value on a scope. ``Scope`` is the protocol collaborators implement;
``ConstructScope`` is a small in-memory tree implementing it.

Whether a scope is managed by a backend is recorded as one explicit
``BackendContext`` value set on that scope by the backend. Lookups read the
scope's own context only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Protocol, runtime_checkable

BACKEND_CONTEXT_KEY = "backplane:backend"


@runtime_checkable
class Scope(Protocol):
    """Construct-tree node the backend can create children under."""

    @property
    def name(self) -> str:
        ...

    def create_child(self, name: str) -> Scope:
        """Create and attach a named child scope."""
        ...

    def get_context(self, key: str) -> Any:
        """Return the context value for key, or None."""
        ...

    def set_context(self, key: str, value: Any) -> None:
        ...


class ConstructScope:
    """In-memory scope tree node."""

    def __init__(self, name: str, parent: Optional[ConstructScope] = None) -> None:
        if not name:
            raise ValueError("Scope name is required")
        self._name = name
        self._parent = parent
        self._children: Dict[str, ConstructScope] = {}
        self._context: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> Optional[ConstructScope]:
        return self._parent

    @property
    def path(self) -> str:
        if self._parent is None:
            return self._name
        return f"{self._parent.path}/{self._name}"

    @property
    def children(self) -> List[ConstructScope]:
        return list(self._children.values())

    def create_child(self, name: str) -> ConstructScope:
        if name in self._children:
            raise ValueError(f'Scope "{self.path}" already has a child named "{name}"')
        child = ConstructScope(name, parent=self)
        self._children[name] = child
        return child

    def find_child(self, name: str) -> Optional[ConstructScope]:
        return self._children.get(name)

    def get_context(self, key: str) -> Any:
        return self._context.get(key)

    def set_context(self, key: str, value: Any) -> None:
        self._context[key] = value

    def walk(self) -> Iterator[ConstructScope]:
        """Depth-first iteration over this scope and its descendants."""
        yield self
        for child in self._children.values():
            yield from child.walk()

    def __repr__(self) -> str:
        return f"ConstructScope({self.path!r})"


@dataclass(frozen=True)
class BackendContext:
    """Marks a scope as backend-managed and names the owning backend."""

    backend_id: str
    environment: str | None = None


def mark_backend_managed(scope: Scope, context: BackendContext) -> None:
    scope.set_context(BACKEND_CONTEXT_KEY, context)


def backend_context(scope: Scope) -> BackendContext | None:
    """Return the backend context set on this scope, if any."""
    value = scope.get_context(BACKEND_CONTEXT_KEY)
    return value if isinstance(value, BackendContext) else None


def is_backend_managed(scope: Scope) -> bool:
    """
    True when a backend handed out this scope.

    Components use this at construction time to decide whether to expect
    injected resources or create their own.
    """
    return backend_context(scope) is not None


def get_backend_id(scope: Scope) -> str | None:
    context = backend_context(scope)
    return context.backend_id if context else None
