"""JSON value helpers shared by every operator.

Values are plain Python JSON data: None, bool, int/float, str, list and
dict. ``bool`` is a subclass of ``int`` in Python, so every numeric check
here excludes it explicitly.
"""

from __future__ import annotations

import math
from typing import Any

from deck.errors import TypeMismatchError


def kind_of(value: Any) -> str:
    """Return the JSON kind name of *value* for error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """Null, false, 0, "", [] and {} are falsy. Everything else is truthy."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def deep_equal(left: Any, right: Any) -> bool:
    """Structural equality with no cross-kind coercion."""
    left_kind = kind_of(left)
    if left_kind != kind_of(right):
        return False
    if left_kind == "array":
        return len(left) == len(right) and all(
            deep_equal(a, b) for a, b in zip(left, right)
        )
    if left_kind == "object":
        return left.keys() == right.keys() and all(
            deep_equal(v, right[k]) for k, v in left.items()
        )
    return left == right


def compare(left: Any, right: Any) -> int:
    """Order two values of the same orderable kind.

    Returns -1, 0 or 1. Only number/number and string/string pairs are
    orderable; strings compare by code point, which matches the byte order
    of their UTF-8 encoding.

    Raises:
        TypeMismatchError: For any other pair, or a NaN operand.
    """
    if is_number(left) and is_number(right):
        if math.isnan(left) or math.isnan(right):
            raise TypeMismatchError("Cannot order NaN values")
    elif not (isinstance(left, str) and isinstance(right, str)):
        raise TypeMismatchError(
            "Cannot compare values of different or unordered kinds",
            expected=kind_of(left),
            actual=kind_of(right),
        )
    if left < right:
        return -1
    if left > right:
        return 1
    return 0
