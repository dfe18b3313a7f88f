"""Capability providers: the only way operators reach the outside world.

The executor never opens connections or reads clocks itself. It is
handed a Providers bundle and calls through these protocols. Database
methods may be plain functions or coroutine functions; the executor
awaits whatever comes back when it is awaitable.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol, runtime_checkable
from uuid import uuid4

from deck.values import compare, deep_equal

SortOrder = dict[str, Literal["asc", "desc"]]


@runtime_checkable
class DatabaseProvider(Protocol):
    def query(
        self,
        collection: str,
        filter: dict[str, Any],
        *,
        select: list[str] | None = None,
        limit: int | None = None,
        skip: int | None = None,
        sort: SortOrder | None = None,
    ) -> Any: ...

    def insert(self, collection: str, document: dict[str, Any]) -> Any: ...

    def update(self, collection: str, filter: dict[str, Any], patch: dict[str, Any]) -> Any: ...

    def delete(self, collection: str, filter: dict[str, Any]) -> Any: ...


@runtime_checkable
class TimeProvider(Protocol):
    def now(self) -> datetime: ...


@runtime_checkable
class RequestContext(Protocol):
    params: dict[str, Any]
    query: dict[str, Any]
    headers: dict[str, Any]
    body: Any
    method: str
    path: str


# ── Shipped implementations ──────────────────────────────────────


class InMemoryDatabase:
    """Dict-of-lists storage with equality filters.

    A filter matches a document when every filter key is present in the
    document with a deep-equal value. Documents are copied on the way in
    and on the way out, so callers never share state with the store.
    """

    def __init__(
        self,
        collections: dict[str, list[dict[str, Any]]] | None = None,
        *,
        id_field: str = "id",
        id_factory: Callable[[], Any] = lambda: uuid4().hex,
    ) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = copy.deepcopy(collections or {})
        self.id_field = id_field
        self.id_factory = id_factory

    def _matches(self, document: dict[str, Any], filter: dict[str, Any]) -> bool:
        return all(
            key in document and deep_equal(document[key], expected)
            for key, expected in filter.items()
        )

    def query(
        self,
        collection: str,
        filter: dict[str, Any],
        *,
        select: list[str] | None = None,
        limit: int | None = None,
        skip: int | None = None,
        sort: SortOrder | None = None,
    ) -> list[dict[str, Any]]:
        rows = [d for d in self.collections.get(collection, []) if self._matches(d, filter)]

        # Stable sorts applied last key first give a multi-key ordering.
        for key, order in reversed(list((sort or {}).items())):
            present = [d for d in rows if d.get(key) is not None]
            missing = [d for d in rows if d.get(key) is None]
            present.sort(key=_SortKey.factory(key), reverse=order == "desc")
            rows = present + missing

        if skip:
            rows = rows[skip:]
        if limit is not None:
            rows = rows[:limit]
        if select is not None:
            rows = [{k: d[k] for k in select if k in d} for d in rows]
        return copy.deepcopy(rows)

    def insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(document)
        if self.id_field not in stored:
            stored[self.id_field] = self.id_factory()
        self.collections.setdefault(collection, []).append(stored)
        return copy.deepcopy(stored)

    def update(self, collection: str, filter: dict[str, Any], patch: dict[str, Any]) -> int:
        count = 0
        for document in self.collections.get(collection, []):
            if self._matches(document, filter):
                document.update(copy.deepcopy(patch))
                count += 1
        return count

    def delete(self, collection: str, filter: dict[str, Any]) -> int:
        rows = self.collections.get(collection, [])
        kept = [d for d in rows if not self._matches(d, filter)]
        self.collections[collection] = kept
        return len(rows) - len(kept)


class _SortKey:
    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def __lt__(self, other: _SortKey) -> bool:
        return compare(self.value, other.value) < 0

    @staticmethod
    def factory(key: str) -> Callable[[dict[str, Any]], _SortKey]:
        return lambda document: _SortKey(document[key])


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Always returns the same instant. Accepts a datetime or an ISO string."""

    def __init__(self, instant: datetime | str) -> None:
        if isinstance(instant, str):
            instant = datetime.fromisoformat(instant.replace("Z", "+00:00"))
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


@dataclass
class StaticRequest:
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    method: str = "GET"
    path: str = "/"


@dataclass
class Providers:
    """Handles to the capabilities an executor may use.

    The executor holds references only; it never closes or reconfigures
    what it is given.
    """

    database: DatabaseProvider | None = None
    clock: TimeProvider = field(default_factory=SystemClock)
    request: RequestContext | None = None
