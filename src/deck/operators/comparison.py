"""$eq, $ne, $gt, $gte, $lt, $lte.

Equality never coerces across kinds (``1`` and ``"1"`` are unequal).
Ordering is only defined for number/number and string/string pairs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from deck.context import Context
from deck.models import ComparisonOp, EqOp, GteOp, GtOp, LteOp, LtOp, NeOp
from deck.values import compare, deep_equal

if TYPE_CHECKING:
    from deck.executor import Executor


async def execute_comparison(op: ComparisonOp, context: Context, executor: Executor) -> bool:
    left = await executor.evaluate(op.left, context)
    right = await executor.evaluate(op.right, context)

    match op:
        case EqOp():
            return deep_equal(left, right)
        case NeOp():
            return not deep_equal(left, right)
        case GtOp():
            return compare(left, right) > 0
        case GteOp():
            return compare(left, right) >= 0
        case LtOp():
            return compare(left, right) < 0
        case LteOp():
            return compare(left, right) <= 0
    raise TypeError(f"Not a comparison operator: {type(op).__name__}")
