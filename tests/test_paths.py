"""Tests for dot-path parsing, formatting and resolution."""

from __future__ import annotations

import pytest

from deck.errors import PathNotFoundError, PathSyntaxError, TypeMismatchError
from deck.paths import Field, Index, format_path, parse_path, resolve_segments


# ── parse_path ────────────────────────────────────────────────────


def test_parse_simple_dot_path():
    assert parse_path("user.email") == (Field("user"), Field("email"))


def test_parse_indices():
    assert parse_path("items[0].name") == (Field("items"), Index(0), Field("name"))
    assert parse_path("items[-1]") == (Field("items"), Index(-1))


def test_parse_quoted_field():
    assert parse_path("headers['x-request.id']") == (
        Field("headers"),
        Field("x-request.id"),
    )


def test_parse_numeric_dot_segment_is_a_field():
    assert parse_path("items.0") == (Field("items"), Field("0"))


@pytest.mark.parametrize(
    "text",
    ["", "a..b", ".a", "a.", "a[", "a[x]", "a[0", "[0]", "a.[0]"],
)
def test_parse_rejects_malformed_paths(text):
    with pytest.raises(PathSyntaxError):
        parse_path(text)


def test_path_syntax_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_path("a..b")


def test_format_path_inverts_parse():
    for text in ["a", "a.b", "a[0].b", "a[-2]", "a['b c']", "a['it\\'s']"]:
        assert parse_path(format_path(parse_path(text))) == parse_path(text)


# ── resolve_segments ─────────────────────────────────────────────


def test_resolve_nested_value():
    root = {"user": {"posts": [{"title": "first"}, {"title": "second"}]}}
    segments = parse_path("user.posts[1].title")[0:]
    assert resolve_segments(root, segments, "user.posts[1].title") == "second"


def test_resolve_missing_key_raises_path_not_found():
    with pytest.raises(PathNotFoundError) as exc:
        resolve_segments({"a": {}}, parse_path("a.b"), "a.b")
    assert exc.value.path == "a.b"


def test_resolve_field_on_scalar_raises_path_not_found():
    with pytest.raises(PathNotFoundError):
        resolve_segments({"a": 5}, parse_path("a.b"), "a.b")


def test_resolve_index_out_of_range_raises_path_not_found():
    with pytest.raises(PathNotFoundError):
        resolve_segments({"a": [1]}, parse_path("a[3]"), "a[3]")


def test_resolve_index_on_object_raises_type_mismatch():
    with pytest.raises(TypeMismatchError, match="expected array, got object"):
        resolve_segments({"a": {"b": 1}}, parse_path("a[0]"), "a[0]")


def test_resolve_numeric_field_indexes_arrays():
    assert resolve_segments({"a": [10, 20]}, parse_path("a.1"), "a.1") == 20


def test_resolve_null_value_is_found():
    assert resolve_segments({"a": None}, parse_path("a"), "a") is None
