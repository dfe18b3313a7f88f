"""$add, $multiply, $subtract, $divide."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from deck.context import Context
from deck.errors import DivisionByZeroError, TypeMismatchError
from deck.models import AddOp, ArithmeticOp, DivideOp, MultiplyOp, SubtractOp
from deck.values import is_number, kind_of

if TYPE_CHECKING:
    from deck.executor import Executor


async def _numbers(op: ArithmeticOp, context: Context, executor: Executor) -> list[Any]:
    # Each operand is checked as soon as it is evaluated, so a bad first
    # operand stops evaluation of the rest.
    values = []
    for position, operand in enumerate(op.operands):
        value = await executor.evaluate(operand, context)
        if not is_number(value):
            raise TypeMismatchError(
                f"{op.op} operand {position} must be a number",
                expected="number",
                actual=kind_of(value),
            )
        values.append(value)
    return values


def _divide(dividend: int | float, divisor: int | float) -> int | float:
    if divisor == 0:
        raise DivisionByZeroError()
    if isinstance(dividend, int) and isinstance(divisor, int) and dividend % divisor == 0:
        return dividend // divisor
    return dividend / divisor


async def execute_arithmetic(op: ArithmeticOp, context: Context, executor: Executor) -> int | float:
    values = await _numbers(op, context, executor)

    match op:
        case AddOp():
            total = values[0]
            for value in values[1:]:
                total += value
            return total
        case MultiplyOp():
            product = values[0]
            for value in values[1:]:
                product *= value
            return product
        case SubtractOp():
            return values[0] - values[1]
        case DivideOp():
            return _divide(values[0], values[1])
    raise TypeError(f"Not an arithmetic operator: {type(op).__name__}")
