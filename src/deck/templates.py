"""Jinja2 rendering for $renderString.

Templates are restricted to ``{{ name }}`` placeholders whose body is a dot
path (``user.name``, ``items[0]``, ``user-id``). Placeholders are pulled out
before Jinja2 parses the template, so names Jinja2 would read as constants
or expressions (``none``, ``true``, ``a-b``) stay plain key lookups. Each
placeholder is rewritten to a slot in the resolved value list; anything
else Jinja2 finds (filters, tags, arithmetic) is rejected when the config
is loaded.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Any

import jinja2
from jinja2 import nodes as jinja_nodes

from deck.errors import InvalidTemplateError, PathSyntaxError
from deck.paths import Segment, format_path, parse_path, resolve_segments

_PLACEHOLDER = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_PLACEHOLDER_PATH = re.compile(
    r"""[\w-]+(?:\.[\w-]+|\[\s*(?:-?\d+|'[^']*'|"[^"]*")\s*\])*"""
)
_SLOTS = "_v"


def _finalize(value: Any) -> Any:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


_ENV = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
    finalize=_finalize,
)


def _placeholder_segments(body: str, template_str: str) -> tuple[Segment, ...]:
    path = body.strip()
    if not _PLACEHOLDER_PATH.fullmatch(path):
        raise InvalidTemplateError(
            f"Template {template_str!r} may only contain {{{{ name }}}} placeholders, "
            f"found {{{{{body}}}}}"
        )
    try:
        return parse_path(path)
    except PathSyntaxError as e:
        raise InvalidTemplateError(f"Invalid placeholder in template {template_str!r}: {e}") from e


@lru_cache(maxsize=512)
def _rewrite(template_str: str) -> tuple[str, tuple[tuple[Segment, ...], ...]]:
    placeholders: list[tuple[Segment, ...]] = []

    def slot(match: re.Match[str]) -> str:
        placeholders.append(_placeholder_segments(match.group(1), template_str))
        return f"{{{{ {_SLOTS}[{len(placeholders) - 1}] }}}}"

    return _PLACEHOLDER.sub(slot, template_str), tuple(placeholders)


@lru_cache(maxsize=512)
def check_template(template_str: str) -> tuple[tuple[Segment, ...], ...]:
    """Parse *template_str* and return the path of every placeholder.

    Raises:
        InvalidTemplateError: On Jinja2 syntax errors or on anything
            besides literal text and placeholders.
    """
    rewritten, placeholders = _rewrite(template_str)
    try:
        ast = _ENV.parse(rewritten)
    except jinja2.TemplateSyntaxError as e:
        raise InvalidTemplateError(f"Invalid template {template_str!r}: {e}") from e

    for output in ast.body:
        if not isinstance(output, jinja_nodes.Output):
            raise InvalidTemplateError(
                f"Template {template_str!r} may only contain {{{{ name }}}} placeholders"
            )
    return placeholders


@lru_cache(maxsize=512)
def _compile(template_str: str) -> jinja2.Template:
    check_template(template_str)
    return _ENV.from_string(_rewrite(template_str)[0])


def render_string(template_str: str, variables: dict[str, Any]) -> str:
    """Substitute ``{{ name }}`` placeholders from *variables*.

    Strings are inserted as-is; every other value is inserted as JSON.

    Raises:
        PathNotFoundError: If a placeholder does not resolve in *variables*.
        TypeMismatchError: If a placeholder indexes into a non-array.
    """
    values = [
        resolve_segments(variables, segments, format_path(segments))
        for segments in check_template(template_str)
    ]
    return _compile(template_str).render({_SLOTS: values})
