"""Structured JSON logging for pipeline execution.

Writes JSON-lines to disk so operators of a deck service can debug
pipeline runs after the fact. Each log entry is a single JSON object on
one line.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

_logger = logging.getLogger("deck")

_PREVIEW_CHARS = 200


def configure_logging(
    log_dir: str | Path, level: int = logging.DEBUG
) -> None:
    """Set up pipeline logging to write JSON-lines to a file.

    Args:
        log_dir: Directory to write ``pipeline.log`` into.
        level: Logging level (default: DEBUG).
    """
    log_path = Path(log_dir) / "pipeline.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(str(log_path))
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    _logger.addHandler(handler)
    _logger.setLevel(level)


def _log(event: dict[str, Any], level: int = logging.INFO) -> None:
    _logger.log(level, json.dumps(event, default=str))


def _preview(value: Any) -> str:
    return json.dumps(value, default=str)[:_PREVIEW_CHARS]


def log_step_start(step_name: str | None, op: str) -> None:
    _log({"event": "step_start", "step_name": step_name, "op": op})


def log_step_complete(
    step_name: str | None, duration_ms: float, value: Any = None, *, include_value: bool = False
) -> None:
    event: dict[str, Any] = {
        "event": "step_complete",
        "step_name": step_name,
        "duration_ms": round(duration_ms, 2),
    }
    if include_value:
        event["value_preview"] = _preview(value)
    _log(event)


def log_early_return(step_name: str | None) -> None:
    _log({"event": "early_return", "step_name": step_name})


def log_storage_call(op: str, collection: str, duration_ms: float) -> None:
    _log({
        "event": "storage_call",
        "op": op,
        "collection": collection,
        "duration_ms": round(duration_ms, 2),
    }, logging.DEBUG)


def log_error(step_name: str | None, kind: str, error: str) -> None:
    _log({"event": "error", "step_name": step_name, "kind": kind, "error": error}, logging.ERROR)


def log_pipeline_complete(status: str, steps: int, duration_ms: float) -> None:
    _log({
        "event": "pipeline_complete",
        "status": status,
        "steps": steps,
        "duration_ms": round(duration_ms, 2),
    })
