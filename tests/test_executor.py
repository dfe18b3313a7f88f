"""Tests for the executor.

Covers operator dispatch, pipeline sequencing, early return, abort on
failure, cancellation, and the logging events a run emits.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest

from deck.context import Context
from deck.errors import (
    DuplicateBindingError,
    ExecutionCancelledError,
    PathNotFoundError,
    TypeMismatchError,
)
from deck.executor import Executor, evaluate, run_pipeline
from deck.loader import parse_pipeline
from deck.models import GetOp, LiteralValue
from deck.providers import InMemoryDatabase, Providers, StaticRequest
from deck.settings import ExecutorSettings


# ── Helpers ───────────────────────────────────────────────────────


class RecordingDatabase(InMemoryDatabase):
    """In-memory database that records every call made to it."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []

    def insert(self, collection, document):
        self.calls.append(f"insert:{collection}")
        return super().insert(collection, document)

    def query(self, collection, filter, **options):
        self.calls.append(f"query:{collection}")
        return super().query(collection, filter, **options)


# ── evaluate ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_literal_identity():
    for value in [None, 1, "x", [1, {"$get": "a"}], {"a": {"b": 1}}]:
        assert await evaluate(LiteralValue(value=value)) == value


@pytest.mark.asyncio
async def test_evaluate_accepts_raw_json():
    assert await evaluate({"$get": "params.id"}, {"params": {"id": "42"}}) == "42"


@pytest.mark.asyncio
async def test_evaluate_seeds_context_from_request():
    providers = Providers(request=StaticRequest(query={"q": "deck"}))
    assert await evaluate({"$get": "query.q"}, providers=providers) == "deck"


@pytest.mark.asyncio
async def test_evaluate_rejects_non_models():
    with pytest.raises(TypeError):
        await Executor().evaluate({"$get": "a"}, Context())


@pytest.mark.asyncio
async def test_evaluate_payload_field_map():
    executor = Executor()
    ctx = Context({"a": 1})
    payload = {"x": GetOp(path="a"), "y": LiteralValue(value=[2])}
    assert await executor.evaluate_payload(payload, ctx) == {"x": 1, "y": [2]}


def test_resolve_schema():
    executor = Executor(schemas={"Post": {"type": "object"}})
    assert executor.resolve_schema("Post") == {"type": "object"}
    assert executor.resolve_schema({"type": "string"}) == {"type": "string"}
    with pytest.raises(PathNotFoundError, match="Unknown schema"):
        executor.resolve_schema("Nope")


def test_invalid_named_schema_rejected_up_front():
    with pytest.raises(ValueError, match="Invalid JSON Schema"):
        Executor(schemas={"Bad": {"type": "nope"}})


# ── run_pipeline ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_named_steps_bind_in_order():
    result = await run_pipeline(
        [
            {"name": "found", "value": {"$eq": [{"$get": "params.id"}, "42"]}},
            {"name": "label", "value": {"$if": {"cond": {"$get": "found"}, "then": "yes"}}},
        ],
        {"params": {"id": "42"}},
    )
    assert result.status == "completed"
    assert result.context.lookup("found") is True
    assert result.output == "yes"
    assert [s.step_name for s in result.step_results] == ["found", "label"]
    assert all(s.duration_ms >= 0 for s in result.step_results)
    assert result.total_duration_ms >= 0


@pytest.mark.asyncio
async def test_missing_body_email():
    result = await run_pipeline(
        [
            {
                "name": "status",
                "value": {
                    "$if": {
                        "cond": {"$exists": {"$get": "body.email"}},
                        "then": "has-email",
                        "else": "missing",
                    }
                },
            }
        ],
        providers=Providers(request=StaticRequest()),
    )
    assert result.context.lookup("status") == "missing"


@pytest.mark.asyncio
async def test_unnamed_steps_are_not_bound():
    result = await run_pipeline([{"value": 1}, {"value": 2}])
    assert result.output == 2
    assert result.context.names() == []


@pytest.mark.asyncio
async def test_empty_pipeline():
    result = await run_pipeline([])
    assert result.status == "completed"
    assert result.output is None
    assert result.step_results == []


@pytest.mark.asyncio
async def test_failing_step_aborts_pipeline():
    db = RecordingDatabase()
    with pytest.raises(TypeMismatchError):
        await run_pipeline(
            [
                {"name": "bad", "value": {"$add": [1, "two"]}},
                {
                    "name": "side_effect",
                    "value": {"$dbInsert": {"collection": "audit", "document": {"x": 1}}},
                },
            ],
            providers=Providers(database=db),
        )
    assert db.calls == []


@pytest.mark.asyncio
async def test_early_return_stops_pipeline():
    db = RecordingDatabase()
    ctx = Context()
    result = await run_pipeline(
        [
            {"name": "first", "value": 1},
            {"name": "done", "value": {"$return": {"status": 204, "body": {"$get": "first"}}}},
            {"value": {"$dbInsert": {"collection": "audit", "document": {"x": 1}}}},
        ],
        ctx,
        Providers(database=db),
    )
    assert result.returned
    assert result.output == {"status": 204, "body": 1}
    assert "done" not in ctx
    assert len(result.step_results) == 1
    assert db.calls == []


@pytest.mark.asyncio
async def test_return_inside_nested_operator_unwinds_pipeline():
    result = await run_pipeline([
        {"name": "xs", "value": {"$literal": [1, 2, 3]}},
        {
            "name": "mapped",
            "value": {
                "$map": {
                    "items": {"$get": "xs"},
                    "body": {
                        "$if": {
                            "cond": {"$eq": [{"$get": "item"}, 2]},
                            "then": {"$return": "stopped at 2"},
                            "else": {"$get": "item"},
                        }
                    },
                }
            },
        },
    ])
    assert result.returned
    assert result.output == "stopped at 2"
    assert "mapped" not in result.context


@pytest.mark.asyncio
async def test_mutating_results_leaves_parsed_pipeline_intact():
    steps = parse_pipeline([{"name": "tags", "value": {"$literal": {"names": ["a"]}}}])
    first = await run_pipeline(steps)
    first.output["names"].append("b")
    first.context.lookup("tags")["extra"] = 1

    second = await run_pipeline(steps)
    assert second.output == {"names": ["a"]}


@pytest.mark.asyncio
async def test_duplicate_step_name_raises():
    with pytest.raises(DuplicateBindingError):
        await run_pipeline([{"name": "a", "value": 1}, {"name": "a", "value": 2}])


@pytest.mark.asyncio
async def test_cancelled_before_first_step():
    event = asyncio.Event()
    event.set()
    with pytest.raises(ExecutionCancelledError):
        await run_pipeline([{"name": "a", "value": 1}], cancel_event=event)


@pytest.mark.asyncio
async def test_cancelled_between_steps_skips_database_call():
    event = asyncio.Event()

    class CancellingDatabase(RecordingDatabase):
        def query(self, collection, filter, **options):
            event.set()
            return super().query(collection, filter, **options)

    db = CancellingDatabase()
    with pytest.raises(ExecutionCancelledError):
        await run_pipeline(
            [
                {"name": "rows", "value": {"$dbQuery": {"collection": "posts"}}},
                {"name": "more", "value": {"$dbQuery": {"collection": "posts"}}},
            ],
            providers=Providers(database=db),
            cancel_event=event,
        )
    assert db.calls == ["query:posts"]


@pytest.mark.asyncio
async def test_pipeline_respects_timeout_from_caller():
    class SlowDatabase:
        async def query(self, collection, filter, **options):
            await asyncio.sleep(10)
            return []

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(
            run_pipeline(
                [{"value": {"$dbQuery": {"collection": "x"}}}],
                providers=Providers(database=SlowDatabase()),
            ),
            timeout=0.05,
        )


# ── Logging ──────────────────────────────────────────────────────


def events(caplog) -> list[dict]:
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "deck"]


@pytest.mark.asyncio
async def test_logs_step_events(caplog):
    caplog.set_level(logging.DEBUG, logger="deck")
    await run_pipeline(
        [
            {"name": "rows", "value": {"$dbQuery": {"collection": "posts"}}},
            {"name": "n", "value": 5},
        ],
        providers=Providers(database=InMemoryDatabase()),
        settings=ExecutorSettings(log_values=True),
    )
    names = [e["event"] for e in events(caplog)]
    assert names == [
        "step_start",
        "storage_call",
        "step_complete",
        "step_start",
        "step_complete",
        "pipeline_complete",
    ]
    complete = [e for e in events(caplog) if e["event"] == "step_complete"]
    assert complete[1]["value_preview"] == "5"
    assert events(caplog)[0]["op"] == "$dbQuery"


@pytest.mark.asyncio
async def test_logs_values_only_when_enabled(caplog):
    caplog.set_level(logging.DEBUG, logger="deck")
    await run_pipeline([{"name": "secret", "value": "hunter2"}])
    complete = [e for e in events(caplog) if e["event"] == "step_complete"]
    assert "value_preview" not in complete[0]


@pytest.mark.asyncio
async def test_logs_error_and_early_return(caplog):
    caplog.set_level(logging.DEBUG, logger="deck")
    with pytest.raises(PathNotFoundError):
        await run_pipeline([{"name": "x", "value": {"$get": "nope"}}])
    error = [e for e in events(caplog) if e["event"] == "error"][0]
    assert error["kind"] == "path_not_found"
    assert error["step_name"] == "x"

    caplog.clear()
    await run_pipeline([{"name": "r", "value": {"$return": 1}}])
    assert [e["event"] for e in events(caplog)] == [
        "step_start",
        "early_return",
        "pipeline_complete",
    ]
    assert events(caplog)[-1]["status"] == "returned"
