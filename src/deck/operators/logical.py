"""$and, $or, $not.

$and and $or short-circuit and return the deciding operand's value
rather than a coerced boolean.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from deck.context import Context
from deck.models import AndOp, NotOp, OrOp
from deck.values import is_truthy

if TYPE_CHECKING:
    from deck.executor import Executor


async def execute_and(op: AndOp, context: Context, executor: Executor) -> Any:
    value: Any = True
    for operand in op.operands:
        value = await executor.evaluate(operand, context)
        if not is_truthy(value):
            return value
    return value


async def execute_or(op: OrOp, context: Context, executor: Executor) -> Any:
    value: Any = False
    for operand in op.operands:
        value = await executor.evaluate(operand, context)
        if is_truthy(value):
            return value
    return value


async def execute_not(op: NotOp, context: Context, executor: Executor) -> bool:
    return not is_truthy(await executor.evaluate(op.operand, context))
