"""Path segment model and dot-path resolution.

A path is a tuple of segments. Dot paths (``user.email``, ``items[0].name``)
only produce Field and Index segments; the remaining segment kinds are
produced by the JSONPath parser in ``deck.jsonpath``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from deck.errors import PathNotFoundError, PathSyntaxError, TypeMismatchError
from deck.values import kind_of


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Index:
    index: int


@dataclass(frozen=True)
class Wildcard:
    pass


@dataclass(frozen=True)
class Slice:
    start: int | None = None
    end: int | None = None
    step: int | None = None


@dataclass(frozen=True)
class Filter:
    # An OperatorValue evaluated with the candidate bound to "@".
    predicate: Any


@dataclass(frozen=True)
class Selection:
    selectors: tuple[Segment, ...]


@dataclass(frozen=True)
class RecursiveDescent:
    segment: Segment


Segment = Union[Field, Index, Wildcard, Slice, Filter, Selection, RecursiveDescent]

_BRACKET = re.compile(
    r"""\[\s*(?:
        (?P<index>-?\d+)
      | (?P<quote>['"])(?P<quoted>(?:\\.|(?!(?P=quote)).)*)(?P=quote)
    )\s*\]""",
    re.VERBOSE,
)
_NAME = re.compile(r"[^.\[\]]+")
_PLAIN_NAME = re.compile(r"[^.\[\]'\"\\]+")


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


@lru_cache(maxsize=1024)
def parse_path(text: str) -> tuple[Segment, ...]:
    """Parse a dot path into Field/Index segments.

    Supports ``a.b``, ``a[0]``, ``a[-1]``, ``a['key with.dots']`` and
    numeric dot segments (``items.0``, resolved as an index on arrays).

    Raises:
        PathSyntaxError: On empty segments or malformed brackets.
    """
    if not text:
        raise PathSyntaxError("Empty path")

    segments: list[Segment] = []
    pos = 0
    expect_name = True

    while pos < len(text):
        char = text[pos]
        if char == "[":
            if expect_name and segments:
                raise PathSyntaxError(f"Unexpected '[' after '.' in path '{text}'")
            match = _BRACKET.match(text, pos)
            if match is None:
                raise PathSyntaxError(f"Malformed bracket in path '{text}' at {pos}")
            if match.group("index") is not None:
                if not segments:
                    raise PathSyntaxError(f"Path '{text}' must start with a name")
                segments.append(Index(int(match.group("index"))))
            else:
                segments.append(Field(_unescape(match.group("quoted"))))
            pos = match.end()
            expect_name = False
        elif char == ".":
            if expect_name:
                raise PathSyntaxError(f"Empty segment in path '{text}' at {pos}")
            expect_name = True
            pos += 1
        else:
            match = _NAME.match(text, pos)
            if not expect_name or match is None:
                raise PathSyntaxError(f"Unexpected '{char}' in path '{text}' at {pos}")
            segments.append(Field(match.group()))
            pos = match.end()
            expect_name = False

    if expect_name:
        raise PathSyntaxError(f"Path '{text}' ends with '.'")
    return tuple(segments)


def format_path(segments: tuple[Segment, ...] | list[Segment]) -> str:
    """Render Field/Index segments back into a dot path ``parse_path`` accepts."""
    parts: list[str] = []
    for i, segment in enumerate(segments):
        if isinstance(segment, Index):
            parts.append(f"[{segment.index}]")
        elif isinstance(segment, Field):
            if _PLAIN_NAME.fullmatch(segment.name):
                parts.append(segment.name if i == 0 else f".{segment.name}")
            else:
                escaped = segment.name.replace("\\", "\\\\").replace("'", "\\'")
                parts.append(f"['{escaped}']")
        else:
            raise PathSyntaxError(
                f"{type(segment).__name__} segments cannot appear in a dot path"
            )
    return "".join(parts)


def resolve_segments(root: Any, segments: tuple[Segment, ...], path: str) -> Any:
    """Walk *segments* from *root*.

    Raises:
        PathNotFoundError: Unknown field, field on a non-object, or index
            out of range.
        TypeMismatchError: Index applied to a non-array.
    """
    current = root
    for segment in segments:
        match segment:
            case Field(name=name):
                if isinstance(current, dict):
                    if name not in current:
                        raise PathNotFoundError(path)
                    current = current[name]
                elif isinstance(current, list) and name.isascii() and name.isdigit():
                    position = int(name)
                    if position >= len(current):
                        raise PathNotFoundError(path)
                    current = current[position]
                else:
                    raise PathNotFoundError(path)
            case Index(index=index):
                if not isinstance(current, list):
                    raise TypeMismatchError(
                        f"Cannot index into '{path}'",
                        expected="array",
                        actual=kind_of(current),
                    )
                if not -len(current) <= index < len(current):
                    raise PathNotFoundError(path)
                current = current[index]
            case _:
                raise PathSyntaxError(
                    f"{type(segment).__name__} segments cannot appear in a dot path"
                )
    return current
