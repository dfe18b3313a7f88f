"""Config document loading: JSON or YAML into validated models."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from deck.errors import ConfigLoadError
from deck.models import OPERATOR_VALUE_ADAPTER, DeckConfig, PipelineStep

_PIPELINE_ADAPTER: TypeAdapter[list[PipelineStep]] = TypeAdapter(list[PipelineStep])


def _read(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(f"Invalid JSON in {path}: {e}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e


def load_config(path: str | Path) -> DeckConfig:
    """Load a deck config document from a ``.json`` or ``.yaml`` file.

    Parses the file, then validates the structure (including every
    operator expression) via Pydantic.

    Args:
        path: Path to the config file. ``.json`` is parsed as JSON,
            anything else as YAML.

    Returns:
        Validated DeckConfig.

    Raises:
        ConfigLoadError: If the file doesn't exist, can't be parsed,
            or the structure doesn't match the expected schema.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigLoadError(f"Config file not found: {path}")

    raw = _read(path)
    if not isinstance(raw, dict):
        raise ConfigLoadError(
            f"Config document must be a mapping, got {type(raw).__name__}"
        )

    try:
        return DeckConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigLoadError(f"Config structure invalid: {e}") from e


def parse_pipeline(raw: Any) -> list[PipelineStep]:
    """Validate an in-memory list of ``{"name", "value"}`` step dicts."""
    try:
        return _PIPELINE_ADAPTER.validate_python(raw)
    except PydanticValidationError as e:
        raise ConfigLoadError(f"Pipeline structure invalid: {e}") from e


def parse_expression(raw: Any) -> Any:
    """Validate a single in-memory expression into an operator model."""
    try:
        return OPERATOR_VALUE_ADAPTER.validate_python(raw)
    except PydanticValidationError as e:
        raise ConfigLoadError(f"Expression invalid: {e}") from e
