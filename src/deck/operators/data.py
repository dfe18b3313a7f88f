"""$get and $jsonPath: read values out of the context."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from deck import jsonpath
from deck.context import Context
from deck.errors import PathNotFoundError, TypeMismatchError
from deck.models import GetOp, JsonPathOp
from deck.values import is_truthy

if TYPE_CHECKING:
    from deck.executor import Executor


def execute_get(op: GetOp, context: Context) -> Any:
    """Resolve a dot path. A missing name or key raises PathNotFoundError."""
    return context.resolve(op.path)


async def execute_json_path(op: JsonPathOp, context: Context, executor: Executor) -> list[Any]:
    """Query the whole context with JSONPath. No match is ``[]``, never an error.

    Filter predicates run through the executor with the candidate bound
    to ``@``. A predicate that reads a missing path, or compares values of
    unordered kinds, simply does not match.
    """
    path = jsonpath.compile_jsonpath(op.path)

    async def matches(predicate: Any, candidate: Any) -> bool:
        try:
            return is_truthy(await executor.evaluate(predicate, context.child({"@": candidate})))
        except (PathNotFoundError, TypeMismatchError):
            return False

    return await jsonpath.query(context.to_dict(), path, matches)
