"""Tests for the shipped capability providers."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from deck.errors import TypeMismatchError
from deck.providers import (
    DatabaseProvider,
    FixedClock,
    InMemoryDatabase,
    Providers,
    RequestContext,
    StaticRequest,
    SystemClock,
    TimeProvider,
)


def make_db() -> InMemoryDatabase:
    return InMemoryDatabase({
        "posts": [
            {"id": 1, "author": "ann", "score": 5, "title": "b"},
            {"id": 2, "author": "bob", "score": 9, "title": "a"},
            {"id": 3, "author": "ann", "score": 7, "title": "c"},
            {"id": 4, "author": "ann", "title": "d"},
        ]
    })


# ── InMemoryDatabase ──────────────────────────────────────────────


def test_query_equality_filter():
    rows = make_db().query("posts", {"author": "ann"})
    assert [r["id"] for r in rows] == [1, 3, 4]


def test_query_unknown_collection_is_empty():
    assert make_db().query("nope", {}) == []


def test_query_filter_uses_deep_equality_without_coercion():
    assert make_db().query("posts", {"id": "1"}) == []
    assert [r["id"] for r in make_db().query("posts", {"id": 1.0})] == [1]


def test_query_sort_skip_limit_select():
    rows = make_db().query(
        "posts", {}, sort={"score": "desc"}, skip=1, limit=2, select=["id", "score"]
    )
    assert rows == [{"id": 3, "score": 7}, {"id": 1, "score": 5}]


def test_query_sort_puts_missing_values_last():
    rows = make_db().query("posts", {"author": "ann"}, sort={"score": "asc"})
    assert [r["id"] for r in rows] == [1, 3, 4]


def test_query_sort_mixed_kinds_raises():
    db = InMemoryDatabase({"c": [{"v": 1}, {"v": "x"}]})
    with pytest.raises(TypeMismatchError):
        db.query("c", {}, sort={"v": "asc"})


def test_query_returns_copies():
    db = make_db()
    db.query("posts", {"id": 1})[0]["title"] = "changed"
    assert db.query("posts", {"id": 1})[0]["title"] == "b"


def test_insert_generates_id():
    db = InMemoryDatabase(id_factory=lambda: "new-id")
    doc = db.insert("posts", {"title": "hello"})
    assert doc == {"title": "hello", "id": "new-id"}
    assert db.query("posts", {}) == [doc]


def test_insert_keeps_existing_id():
    doc = InMemoryDatabase().insert("posts", {"id": 7})
    assert doc["id"] == 7


def test_update_and_delete_return_counts():
    db = make_db()
    assert db.update("posts", {"author": "ann"}, {"flag": True}) == 3
    assert all(r["flag"] for r in db.query("posts", {"author": "ann"}))
    assert db.delete("posts", {"author": "ann"}) == 3
    assert db.delete("posts", {"author": "ann"}) == 0
    assert [r["id"] for r in db.query("posts", {})] == [2]


# ── Clocks and requests ──────────────────────────────────────────


def test_fixed_clock_accepts_iso_string():
    clock = FixedClock("2025-01-01T00:00:00Z")
    assert clock.now() == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_fixed_clock_assumes_utc_for_naive_datetimes():
    assert FixedClock(datetime(2025, 1, 1)).now().tzinfo == timezone.utc


def test_system_clock_is_timezone_aware():
    assert SystemClock().now().tzinfo is not None


def test_protocols_are_structural():
    assert isinstance(InMemoryDatabase(), DatabaseProvider)
    assert isinstance(SystemClock(), TimeProvider)
    assert isinstance(StaticRequest(), RequestContext)


def test_providers_defaults():
    providers = Providers()
    assert providers.database is None
    assert providers.request is None
    assert isinstance(providers.clock, SystemClock)
