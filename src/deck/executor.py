"""Expression executor: the main orchestrator.

Dispatches operator models to their implementations, sequences pipeline
steps over an accumulating context, and tracks timing.
"""

from __future__ import annotations

import asyncio
import copy
import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from deck import pipeline_logger
from deck.context import Context
from deck.errors import (
    EarlyReturn,
    ExecutionCancelledError,
    ExecutionError,
    PathNotFoundError,
)
from deck.models import (
    OPERATOR_VALUE_ADAPTER,
    AddOp,
    AndOp,
    DbDeleteOp,
    DbInsertOp,
    DbQueryOp,
    DbUpdateOp,
    DivideOp,
    EqOp,
    ExistsOp,
    FilterOp,
    GetOp,
    GteOp,
    GtOp,
    IfOp,
    JsonPathOp,
    LiteralValue,
    LteOp,
    LtOp,
    MapOp,
    MergeOp,
    MultiplyOp,
    NeOp,
    NotOp,
    NowOp,
    OrOp,
    PipelineResult,
    PipelineStep,
    ReduceOp,
    RenderStringOp,
    ReturnOp,
    StepResult,
    SubtractOp,
    SwitchOp,
    ValidateOp,
    check_json_schema,
)
from deck.operators.arithmetic import execute_arithmetic
from deck.operators.collection import execute_filter, execute_map, execute_reduce
from deck.operators.comparison import execute_comparison
from deck.operators.conditional import execute_if, execute_switch
from deck.operators.data import execute_get, execute_json_path
from deck.operators.database import (
    execute_db_delete,
    execute_db_insert,
    execute_db_query,
    execute_db_update,
)
from deck.operators.logical import execute_and, execute_not, execute_or
from deck.operators.utility import (
    execute_exists,
    execute_merge,
    execute_now,
    execute_render_string,
    execute_return,
    execute_validate,
)
from deck.providers import Providers
from deck.settings import ExecutorSettings


class Executor:
    """Evaluates operator models against a context.

    Holds references to the providers, settings and the named-schema
    registry; it owns none of them. One executor may serve many
    concurrent pipeline runs, each with its own Context.
    """

    def __init__(
        self,
        providers: Providers | None = None,
        *,
        settings: ExecutorSettings | None = None,
        schemas: Mapping[str, dict[str, Any]] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.providers = providers or Providers()
        self.settings = settings or ExecutorSettings()
        self.schemas = {
            name: check_json_schema(schema) for name, schema in (schemas or {}).items()
        }
        self.cancel_event = cancel_event

    async def evaluate(self, value: Any, context: Context) -> Any:
        """Evaluate one operator model.

        Uses structural pattern matching on the Pydantic model type.
        """
        match value:
            case LiteralValue():
                # The parsed config is shared across runs
                if isinstance(value.value, (dict, list)):
                    return copy.deepcopy(value.value)
                return value.value
            case GetOp():
                return execute_get(value, context)
            case JsonPathOp():
                return await execute_json_path(value, context, self)
            case IfOp():
                return await execute_if(value, context, self)
            case SwitchOp():
                return await execute_switch(value, context, self)
            case EqOp() | NeOp() | GtOp() | GteOp() | LtOp() | LteOp():
                return await execute_comparison(value, context, self)
            case AndOp():
                return await execute_and(value, context, self)
            case OrOp():
                return await execute_or(value, context, self)
            case NotOp():
                return await execute_not(value, context, self)
            case AddOp() | MultiplyOp() | SubtractOp() | DivideOp():
                return await execute_arithmetic(value, context, self)
            case MapOp():
                return await execute_map(value, context, self)
            case FilterOp():
                return await execute_filter(value, context, self)
            case ReduceOp():
                return await execute_reduce(value, context, self)
            case DbQueryOp():
                return await execute_db_query(value, context, self)
            case DbInsertOp():
                return await execute_db_insert(value, context, self)
            case DbUpdateOp():
                return await execute_db_update(value, context, self)
            case DbDeleteOp():
                return await execute_db_delete(value, context, self)
            case MergeOp():
                return await execute_merge(value, context, self)
            case ExistsOp():
                return await execute_exists(value, context, self)
            case NowOp():
                return execute_now(value, self)
            case RenderStringOp():
                return await execute_render_string(value, context, self)
            case ReturnOp():
                return await execute_return(value, context, self)
            case ValidateOp():
                return await execute_validate(value, context, self)
            case _:
                raise TypeError(f"Not an operator model: {type(value).__name__}")

    async def evaluate_payload(self, payload: Any, context: Context) -> Any:
        """Evaluate a payload: one expression, or a field map key by key."""
        if isinstance(payload, dict):
            return {key: await self.evaluate(v, context) for key, v in payload.items()}
        return await self.evaluate(payload, context)

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ExecutionCancelledError()

    def resolve_schema(self, schema: dict[str, Any] | str) -> dict[str, Any]:
        """Return an inline schema as-is, or look a named one up."""
        if isinstance(schema, dict):
            return schema
        if schema not in self.schemas:
            raise PathNotFoundError(f"schemas.{schema}", f"Unknown schema: '{schema}'")
        return self.schemas[schema]

    def initial_context(self, context: Context | Mapping[str, Any] | None) -> Context:
        if isinstance(context, Context):
            return context
        if context is not None:
            return Context(context)
        if self.providers.request is not None:
            return Context.from_request(self.providers.request)
        return Context()

    async def run_pipeline(
        self,
        steps: Sequence[PipelineStep],
        context: Context | Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        """Execute *steps* in order against one accumulating context.

        1. Checks for cancellation before each step.
        2. Evaluates the step's expression against the current context.
        3. Binds the value under the step's name, if it has one.
        4. Stops early on ``$return`` with status ``returned``.

        Returns:
            PipelineResult with the output, final context and timings.

        Raises:
            ExecutionError: If any step fails. Later steps never run.
            DuplicateBindingError: If a step name is already bound.
        """
        context = self.initial_context(context)
        step_results: list[StepResult] = []
        start = time.monotonic()

        status = "completed"
        output: Any = None
        for step in steps:
            step_start = time.monotonic()
            pipeline_logger.log_step_start(step.name, step.value.op)

            try:
                self.check_cancelled()
                value = await self.evaluate(step.value, context)
            except EarlyReturn as signal:
                pipeline_logger.log_early_return(step.name)
                status = "returned"
                output = signal.value
                break
            except ExecutionError as e:
                pipeline_logger.log_error(step.name, e.kind.value, str(e))
                raise

            duration_ms = (time.monotonic() - step_start) * 1000

            if step.name is not None:
                context.bind(step.name, value)
            step_results.append(
                StepResult(step_name=step.name, value=value, duration_ms=duration_ms)
            )
            output = value

            pipeline_logger.log_step_complete(
                step.name, duration_ms, value, include_value=self.settings.log_values
            )

        total_ms = (time.monotonic() - start) * 1000
        pipeline_logger.log_pipeline_complete(status, len(step_results), total_ms)

        return PipelineResult(
            status=status,
            output=output,
            context=context,
            step_results=step_results,
            total_duration_ms=total_ms,
        )


def _as_steps(steps: Sequence[PipelineStep | Mapping[str, Any]]) -> list[PipelineStep]:
    return [s if isinstance(s, PipelineStep) else PipelineStep.model_validate(s) for s in steps]


async def evaluate(
    value: Any,
    context: Context | Mapping[str, Any] | None = None,
    providers: Providers | None = None,
    *,
    settings: ExecutorSettings | None = None,
    schemas: Mapping[str, dict[str, Any]] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> Any:
    """Evaluate a single expression.

    *value* may be an operator model or raw JSON (``{"$get": "a.b"}``).
    A ``$return`` here raises EarlyReturn to the caller.
    """
    if not isinstance(value, BaseModel):
        value = OPERATOR_VALUE_ADAPTER.validate_python(value)
    executor = Executor(providers, settings=settings, schemas=schemas, cancel_event=cancel_event)
    return await executor.evaluate(value, executor.initial_context(context))


async def run_pipeline(
    steps: Sequence[PipelineStep | Mapping[str, Any]],
    context: Context | Mapping[str, Any] | None = None,
    providers: Providers | None = None,
    *,
    settings: ExecutorSettings | None = None,
    schemas: Mapping[str, dict[str, Any]] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> PipelineResult:
    """Execute a pipeline with a fresh Executor.

    Args:
        steps: PipelineStep models, or raw ``{"name", "value"}`` dicts.
        context: Starting context. A dict is wrapped in a Context; None
            seeds one from ``providers.request`` when present.
        providers: Database, clock and request handles.
        settings: Executor settings (default: ExecutorSettings()).
        schemas: Named JSON Schemas for ``$validate``.
        cancel_event: When set, the run stops with ExecutionCancelledError
            before the next step or database call.

    Returns:
        PipelineResult with status, output, final context and timings.

    Raises:
        ExecutionError: If any step fails.
    """
    executor = Executor(providers, settings=settings, schemas=schemas, cancel_event=cancel_event)
    return await executor.run_pipeline(_as_steps(steps), context)
