"""Tests for $eq, $ne, $gt, $gte, $lt, $lte."""

from __future__ import annotations

import pytest

from deck.errors import PathNotFoundError, TypeMismatchError
from deck.executor import evaluate


@pytest.mark.asyncio
async def test_eq_params_id():
    assert await evaluate({"$eq": [{"$get": "params.id"}, "42"]}, {"params": {"id": "42"}}) is True


@pytest.mark.asyncio
async def test_eq_never_coerces():
    assert await evaluate({"$eq": [1, "1"]}) is False
    assert await evaluate({"$eq": [1, True]}) is False
    assert await evaluate({"$ne": [1, "1"]}) is True


@pytest.mark.asyncio
async def test_eq_structural():
    assert await evaluate({"$eq": [{"$literal": [1, {"a": 2}]}, {"$literal": [1.0, {"a": 2}]}]}) is True
    assert await evaluate({"$eq": [None, None]}) is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("op", "left", "right", "expected"),
    [
        ("$gt", 2, 1, True),
        ("$gt", 1, 1, False),
        ("$gte", 1, 1.0, True),
        ("$lt", "apple", "banana", True),
        ("$lte", "b", "a", False),
        ("$lt", -1.5, 0, True),
    ],
)
async def test_ordering(op, left, right, expected):
    assert await evaluate({op: [left, right]}) is expected


@pytest.mark.asyncio
async def test_ordering_mixed_kinds_raises():
    with pytest.raises(TypeMismatchError):
        await evaluate({"$gt": [1, "a"]})
    with pytest.raises(TypeMismatchError):
        await evaluate({"$lt": [None, 1]})


@pytest.mark.asyncio
async def test_left_operand_failure_stops_evaluation():
    with pytest.raises(PathNotFoundError, match="first"):
        await evaluate({"$eq": [{"$get": "first"}, {"$get": "second"}]})
