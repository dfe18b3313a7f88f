"""$map, $filter, $reduce: per-element evaluation in child scopes.

Each element gets its own child context, so ``item`` (or whatever
``as`` names) never leaks into the enclosing pipeline. An error on any
element aborts the whole operator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from deck.context import Context
from deck.errors import TypeMismatchError
from deck.models import FilterOp, MapOp, ReduceOp
from deck.values import is_truthy, kind_of

if TYPE_CHECKING:
    from deck.executor import Executor


async def _items(op: MapOp | FilterOp | ReduceOp, context: Context, executor: Executor) -> list[Any]:
    items = await executor.evaluate(op.items, context)
    if not isinstance(items, list):
        raise TypeMismatchError(
            f"{op.op} items must be an array",
            expected="array",
            actual=kind_of(items),
        )
    return items


async def execute_map(op: MapOp, context: Context, executor: Executor) -> list[Any]:
    results: list[Any] = []
    for item in await _items(op, context, executor):
        results.append(await executor.evaluate(op.body, context.child({op.as_: item})))
    return results


async def execute_filter(op: FilterOp, context: Context, executor: Executor) -> list[Any]:
    kept: list[Any] = []
    for item in await _items(op, context, executor):
        if is_truthy(await executor.evaluate(op.predicate, context.child({op.as_: item}))):
            kept.append(item)
    return kept


async def execute_reduce(op: ReduceOp, context: Context, executor: Executor) -> Any:
    """Fold left. An empty array returns ``initial``."""
    items = await _items(op, context, executor)
    accumulator = await executor.evaluate(op.initial, context)
    for item in items:
        accumulator = await executor.evaluate(
            op.body, context.child({op.as_: item, op.acc: accumulator})
        )
    return accumulator
