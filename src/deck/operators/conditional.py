"""$if and $switch."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from deck.context import Context
from deck.models import IfOp, SwitchOp
from deck.values import deep_equal, is_truthy

if TYPE_CHECKING:
    from deck.executor import Executor


async def execute_if(op: IfOp, context: Context, executor: Executor) -> Any:
    """Only the selected branch is evaluated. No ``else`` yields null."""
    if is_truthy(await executor.evaluate(op.cond, context)):
        return await executor.evaluate(op.then, context)
    if op.else_ is None:
        return None
    return await executor.evaluate(op.else_, context)


async def execute_switch(op: SwitchOp, context: Context, executor: Executor) -> Any:
    subject = await executor.evaluate(op.on, context)
    for case in op.cases:
        if deep_equal(subject, case.when):
            return await executor.evaluate(case.then, context)
    if op.default is None:
        return None
    return await executor.evaluate(op.default, context)
