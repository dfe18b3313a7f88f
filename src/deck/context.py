"""Pipeline execution context.

Accumulates named step results during one pipeline run. Supports child
scopes for collection operators ($map, $filter, $reduce) and JSONPath
filters, where per-element bindings must not leak back into the parent.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from deck.errors import DuplicateBindingError, PathNotFoundError
from deck.paths import parse_path, resolve_segments

if TYPE_CHECKING:
    from deck.providers import RequestContext

RESERVED_NAMES: frozenset[str] = frozenset({"params", "query", "headers", "body"})

_MISSING = object()


class Context:
    """Append-only variable store with overlay child scopes.

    A child holds a reference to its parent plus its own bindings, so
    creating one per collection element costs one small dict, not a copy
    of everything accumulated so far.
    """

    def __init__(self, variables: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(variables or {})
        self._parent: Context | None = None

    @classmethod
    def from_request(cls, request: RequestContext) -> Context:
        """Seed the reserved namespaces from request metadata.

        ``body`` is only bound when the request carried one, so
        ``{"$exists": {"$get": "body"}}`` reports its absence.
        """
        variables: dict[str, Any] = {
            "params": dict(request.params),
            "query": dict(request.query),
            "headers": dict(request.headers),
        }
        if request.body is not None:
            variables["body"] = request.body
        return cls(variables)

    def bind(self, name: str, value: Any) -> None:
        """Store a named value. Raises on names that are already visible."""
        if name in self:
            raise DuplicateBindingError(f"Duplicate binding: '{name}'")
        self._data[name] = value

    def lookup(self, name: str) -> Any:
        value = self.get(name, _MISSING)
        if value is _MISSING:
            raise PathNotFoundError(name)
        return value

    def get(self, name: str, default: Any = None) -> Any:
        scope: Context | None = self
        while scope is not None:
            if name in scope._data:
                return scope._data[name]
            scope = scope._parent
        return default

    def resolve(self, path: str) -> Any:
        """Read a dot path such as ``params.id`` or ``items[0].name``."""
        # parse_path guarantees the first segment is a Field.
        head, *rest = parse_path(path)
        value = self.get(head.name, _MISSING)
        if value is _MISSING:
            raise PathNotFoundError(path)
        return resolve_segments(value, tuple(rest), path)

    def child(self, bindings: Mapping[str, Any] | None = None) -> Context:
        """Create a child scope.

        The child sees all parent data plus *bindings*, which may shadow
        parent names (e.g. ``item`` in nested $map). Nothing set on the
        child is visible from the parent.
        """
        ctx = Context.__new__(Context)
        ctx._data = dict(bindings or {})
        ctx._parent = self
        return ctx

    def names(self) -> list[str]:
        return list(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        """Flatten the scope chain into one dict, innermost bindings winning."""
        chain: list[Context] = []
        scope: Context | None = self
        while scope is not None:
            chain.append(scope)
            scope = scope._parent
        flat: dict[str, Any] = {}
        for scope in reversed(chain):
            flat.update(scope._data)
        return flat

    def __contains__(self, name: object) -> bool:
        return self.get(name, _MISSING) is not _MISSING  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())

    def __repr__(self) -> str:
        return f"Context({self.to_dict()!r})"
