"""$merge, $exists, $now, $renderString, $return, $validate."""

from __future__ import annotations

from datetime import timezone
from typing import TYPE_CHECKING, Any

import jsonschema

from deck.context import Context
from deck.errors import (
    EarlyReturn,
    PathNotFoundError,
    TypeMismatchError,
    ValidationFailedError,
)
from deck.models import ExistsOp, MergeOp, NowOp, RenderStringOp, ReturnOp, ValidateOp
from deck.templates import render_string
from deck.values import kind_of

if TYPE_CHECKING:
    from deck.executor import Executor


async def execute_merge(op: MergeOp, context: Context, executor: Executor) -> dict[str, Any]:
    """Shallow merge, left to right. Later keys win."""
    merged: dict[str, Any] = {}
    for position, payload in enumerate(op.objects):
        value = await executor.evaluate_payload(payload, context)
        if not isinstance(value, dict):
            raise TypeMismatchError(
                f"$merge operand {position} must be an object",
                expected="object",
                actual=kind_of(value),
            )
        merged.update(value)
    return merged


async def execute_exists(op: ExistsOp, context: Context, executor: Executor) -> bool:
    """False for a missing path or a null value. Other errors propagate."""
    try:
        value = await executor.evaluate(op.value, context)
    except PathNotFoundError:
        return False
    return value is not None


def execute_now(op: NowOp, executor: Executor) -> str:
    """Current instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Naive datetimes from a clock are taken to be UTC.
    """
    now = executor.providers.clock.now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


async def execute_render_string(op: RenderStringOp, context: Context, executor: Executor) -> str:
    if op.vars is None:
        variables = context.to_dict()
    else:
        variables = await executor.evaluate_payload(op.vars, context)
        if not isinstance(variables, dict):
            raise TypeMismatchError(
                "$renderString vars must be an object",
                expected="object",
                actual=kind_of(variables),
            )
    return render_string(op.template, variables)


async def execute_return(op: ReturnOp, context: Context, executor: Executor) -> Any:
    raise EarlyReturn(await executor.evaluate_payload(op.value, context))


def _describe(error: jsonschema.ValidationError) -> str:
    location = "/".join(str(p) for p in error.absolute_path)
    return f"{location}: {error.message}" if location else error.message


async def execute_validate(op: ValidateOp, context: Context, executor: Executor) -> Any:
    """Validate a value against a JSON Schema.

    Returns ``true`` on success. On failure, ``onFail`` (if given) is
    evaluated with the messages bound to ``errors``; otherwise strict
    mode raises ValidationFailedError and lenient mode returns ``false``.
    """
    data = await executor.evaluate(op.value, context)
    schema = executor.resolve_schema(op.schema_)

    validator_cls = jsonschema.validators.validator_for(schema)
    details = [_describe(e) for e in validator_cls(schema).iter_errors(data)]
    if not details:
        return True

    if op.on_fail is not None:
        return await executor.evaluate(op.on_fail, context.child({"errors": details}))

    strict = executor.settings.strict_validation if op.strict is None else op.strict
    if strict:
        raise ValidationFailedError("Value does not match schema", details)
    return False
