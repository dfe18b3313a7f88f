"""Pre-flight config validator.

Statically validates a deck config without executing it. Catches the
problems the executor assumes it never sees (duplicate and reserved
step names, unknown middleware, unknown named schemas) plus references
to names that are not bound yet, before any request is served.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from deck.context import RESERVED_NAMES
from deck.jsonpath import compile_jsonpath
from deck.models import (
    DeckConfig,
    FilterOp,
    GetOp,
    JsonPathOp,
    LiteralValue,
    MapOp,
    PipelineStep,
    ReduceOp,
    RenderStringOp,
    ValidateOp,
)
from deck.paths import Field, parse_path
from deck.templates import check_template

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single validation finding."""

    severity: Severity
    location: str  # "routes[0] GET /posts", "middleware.auth"
    step_name: str | None
    field: str  # "name", "value", "middleware"
    message: str


@dataclass(frozen=True)
class ValidationResult:
    """Aggregate result of config validation."""

    diagnostics: list[Diagnostic]

    @property
    def ok(self) -> bool:
        """True when there are no error-severity diagnostics."""
        return not any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]


# ---------------------------------------------------------------------------
# 1. Reference extraction from operator trees
# ---------------------------------------------------------------------------


def _get_root(path: str) -> str:
    return parse_path(path)[0].name  # type: ignore[union-attr]


def _extract_unbound(value: Any, scope: frozenset[str]) -> list[str]:
    """Walk an expression and collect root names it reads that *scope*
    does not bind, in the order they appear.

    Collection operators and ``$validate``'s ``onFail`` add their own
    bindings for the sub-expressions that see them.
    """
    match value:
        case LiteralValue():
            return []
        case GetOp():
            root = _get_root(value.path)
            return [] if root in scope else [root]
        case JsonPathOp():
            segments = compile_jsonpath(value.path).segments
            if segments and isinstance(segments[0], Field) and segments[0].name not in scope:
                return [segments[0].name]
            return []
        case MapOp() | FilterOp():
            inner = value.body if isinstance(value, MapOp) else value.predicate
            return _extract_unbound(value.items, scope) + _extract_unbound(
                inner, scope | {value.as_}
            )
        case ReduceOp():
            return (
                _extract_unbound(value.items, scope)
                + _extract_unbound(value.initial, scope)
                + _extract_unbound(value.body, scope | {value.as_, value.acc})
            )
        case ValidateOp():
            found = _extract_unbound(value.value, scope)
            if value.on_fail is not None:
                found += _extract_unbound(value.on_fail, scope | {"errors"})
            return found
        case RenderStringOp() if value.vars is None:
            return [
                placeholder[0].name
                for placeholder in check_template(value.template)
                if placeholder[0].name not in scope  # type: ignore[union-attr]
            ]
        case BaseModel():
            found: list[str] = []
            for name in type(value).model_fields:
                found += _extract_unbound(getattr(value, name), scope)
            return found
        case list():
            return [ref for item in value for ref in _extract_unbound(item, scope)]
        case dict():
            # Payload field maps
            return [ref for item in value.values() for ref in _extract_unbound(item, scope)]
    return []


def _extract_schema_names(value: Any) -> list[str]:
    """Collect every named schema a ``$validate`` in the tree refers to."""
    match value:
        case LiteralValue():
            return []
        case ValidateOp():
            names = [value.schema_] if isinstance(value.schema_, str) else []
            for name in type(value).model_fields:
                if name != "schema_":
                    names += _extract_schema_names(getattr(value, name))
            return names
        case BaseModel():
            names = []
            for name in type(value).model_fields:
                names += _extract_schema_names(getattr(value, name))
            return names
        case list():
            return [n for item in value for n in _extract_schema_names(item)]
        case dict():
            return [n for item in value.values() for n in _extract_schema_names(item)]
    return []


# ---------------------------------------------------------------------------
# 2. Step checks over one run
# ---------------------------------------------------------------------------


def _check_steps(
    steps: Iterable[tuple[str, PipelineStep]],
    available: frozenset[str],
    schemas: Mapping[str, Any] | None,
) -> list[Diagnostic]:
    """Check the steps of one run, in execution order.

    Every step in *steps* shares one context at runtime, so names must be
    unique across all of them, and a step may only read names bound by
    earlier steps.
    """
    diagnostics: list[Diagnostic] = []
    seen: dict[str, str] = {}

    for location, step in steps:
        for ref in dict.fromkeys(_extract_unbound(step.value, available)):
            diagnostics.append(
                Diagnostic(
                    severity=Severity.WARNING,
                    location=location,
                    step_name=step.name,
                    field="value",
                    message=(
                        f"Reference '{ref}' is not bound before this step. "
                        f"Available names: {sorted(available)}"
                    ),
                )
            )

        if schemas is not None:
            for schema_name in dict.fromkeys(_extract_schema_names(step.value)):
                if schema_name not in schemas:
                    diagnostics.append(
                        Diagnostic(
                            severity=Severity.ERROR,
                            location=location,
                            step_name=step.name,
                            field="value",
                            message=(
                                f"Unknown schema '{schema_name}'. "
                                f"Known schemas: {sorted(schemas)}"
                            ),
                        )
                    )

        if step.name is None:
            continue

        if step.name in RESERVED_NAMES:
            diagnostics.append(
                Diagnostic(
                    severity=Severity.ERROR,
                    location=location,
                    step_name=step.name,
                    field="name",
                    message=f"Step name '{step.name}' is reserved",
                )
            )
        elif step.name in seen:
            diagnostics.append(
                Diagnostic(
                    severity=Severity.ERROR,
                    location=location,
                    step_name=step.name,
                    field="name",
                    message=(
                        f"Duplicate step name '{step.name}' "
                        f"(first bound at {seen[step.name]})"
                    ),
                )
            )
        else:
            seen[step.name] = location

        available = available | {step.name}

    return diagnostics


def _numbered(location: str, steps: list[PipelineStep]) -> list[tuple[str, PipelineStep]]:
    return [(f"{location}.pipeline[{i}]", step) for i, step in enumerate(steps)]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_pipeline(
    steps: list[PipelineStep],
    *,
    known_names: Iterable[str] = RESERVED_NAMES,
    schemas: Mapping[str, Any] | None = None,
    location: str = "pipeline",
) -> ValidationResult:
    """Statically validate one pipeline.

    Args:
        steps: The pipeline's steps.
        known_names: Names bound before the first step runs.
        schemas: Named-schema registry. ``None`` skips the schema check.
        location: Prefix for diagnostic locations.
    """
    located = [(f"{location}[{i}]", step) for i, step in enumerate(steps)]
    return ValidationResult(
        diagnostics=_check_steps(located, frozenset(known_names), schemas)
    )


def validate_config(config: DeckConfig) -> ValidationResult:
    """Statically validate a whole config document without executing it.

    Checks:
    - Middleware references resolve to defined middleware
    - Step names are unique per request (middleware and route share a
      context) and never reuse reserved names
    - ``$validate`` named schemas exist in ``schemas``
    - ``$get``/``$jsonPath``/``$renderString`` read only bound names
      (warning)

    Returns a ``ValidationResult``. The config is considered valid when
    ``result.ok`` is True (no error-severity diagnostics).
    """
    diagnostics: list[Diagnostic] = []

    for index, route in enumerate(config.routes):
        route_location = f"routes[{index}] {route.method} {route.path}"
        run: list[tuple[str, PipelineStep]] = []

        for name in route.middleware:
            middleware = config.middleware.get(name)
            if middleware is None:
                diagnostics.append(
                    Diagnostic(
                        severity=Severity.ERROR,
                        location=route_location,
                        step_name=None,
                        field="middleware",
                        message=(
                            f"Unknown middleware '{name}'. "
                            f"Defined middleware: {sorted(config.middleware)}"
                        ),
                    )
                )
                continue
            run.extend(_numbered(f"middleware.{name}", middleware.pipeline))

        run.extend(_numbered(route_location, route.pipeline))
        diagnostics.extend(_check_steps(run, RESERVED_NAMES, config.schemas))

    # Unused middleware still has to be internally consistent.
    used = {name for route in config.routes for name in route.middleware}
    for name, middleware in config.middleware.items():
        if name not in used:
            diagnostics.extend(
                _check_steps(
                    _numbered(f"middleware.{name}", middleware.pipeline),
                    RESERVED_NAMES,
                    config.schemas,
                )
            )

    return ValidationResult(diagnostics=diagnostics)


def load_and_validate_config(
    path: str | Path,
) -> tuple[DeckConfig, ValidationResult]:
    """Load a config from JSON/YAML and validate it.

    Convenience wrapper: calls ``load_config`` then ``validate_config``.
    Raises ``ConfigLoadError`` if parsing fails.
    """
    from deck.loader import load_config

    config = load_config(path)
    result = validate_config(config)
    return config, result
