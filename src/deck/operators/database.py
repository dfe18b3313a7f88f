"""$dbQuery, $dbInsert, $dbUpdate, $dbDelete.

The only operators that await I/O. Each call checks for cancellation
first, goes through the injected DatabaseProvider, and wraps any
provider failure that is not already a deck error in a StorageError.
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from deck import pipeline_logger
from deck.context import Context
from deck.errors import DeckError, StorageError, TypeMismatchError
from deck.models import DbDeleteOp, DbInsertOp, DbQueryOp, DbUpdateOp
from deck.providers import DatabaseProvider
from deck.values import kind_of

if TYPE_CHECKING:
    from deck.executor import Executor


async def _object(label: str, payload: Any, context: Context, executor: Executor) -> dict[str, Any]:
    value = await executor.evaluate_payload(payload, context)
    if not isinstance(value, dict):
        raise TypeMismatchError(
            f"{label} must be an object", expected="object", actual=kind_of(value)
        )
    return value


def _database(op_name: str, executor: Executor) -> DatabaseProvider:
    database = executor.providers.database
    if database is None:
        raise StorageError(f"{op_name} requires a database provider, none configured")
    return database


async def _call(
    op_name: str,
    collection: str,
    executor: Executor,
    method: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    executor.check_cancelled()
    start = time.monotonic()
    try:
        result = method(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
    except DeckError:
        raise
    except Exception as e:
        raise StorageError(f"{op_name} on '{collection}' failed: {e}", cause=e) from e
    pipeline_logger.log_storage_call(op_name, collection, (time.monotonic() - start) * 1000)
    return result


async def execute_db_query(op: DbQueryOp, context: Context, executor: Executor) -> list[Any]:
    database = _database(op.op, executor)
    filter = {} if op.filter is None else await _object("$dbQuery filter", op.filter, context, executor)
    rows = await _call(
        op.op,
        op.collection,
        executor,
        database.query,
        op.collection,
        filter,
        select=op.select,
        limit=op.limit,
        skip=op.skip,
        sort=op.sort,
    )
    return list(rows)


async def execute_db_insert(op: DbInsertOp, context: Context, executor: Executor) -> Any:
    database = _database(op.op, executor)
    document = await _object("$dbInsert document", op.document, context, executor)
    return await _call(op.op, op.collection, executor, database.insert, op.collection, document)


async def execute_db_update(op: DbUpdateOp, context: Context, executor: Executor) -> int:
    database = _database(op.op, executor)
    filter = await _object("$dbUpdate filter", op.filter, context, executor)
    update = await _object("$dbUpdate update", op.update, context, executor)
    return await _call(
        op.op, op.collection, executor, database.update, op.collection, filter, update
    )


async def execute_db_delete(op: DbDeleteOp, context: Context, executor: Executor) -> int:
    database = _database(op.op, executor)
    filter = await _object("$dbDelete filter", op.filter, context, executor)
    return await _call(op.op, op.collection, executor, database.delete, op.collection, filter)
