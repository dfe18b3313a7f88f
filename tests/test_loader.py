"""Tests for config document loading (JSON and YAML)."""

from __future__ import annotations

import json

import pytest

from deck.errors import ConfigLoadError
from deck.loader import load_config, parse_expression, parse_pipeline
from deck.models import EqOp, GetOp, LiteralValue


def test_load_yaml_config(tmp_path):
    yaml_content = """\
routes:
  - path: /posts/:id
    method: get
    pipeline:
      - name: found
        value:
          $eq:
            - $get: params.id
            - "42"
"""
    path = tmp_path / "deck.yaml"
    path.write_text(yaml_content)
    config = load_config(path)
    step = config.routes[0].pipeline[0]
    assert step.name == "found"
    assert step.value == EqOp(left=GetOp(path="params.id"), right=LiteralValue(value="42"))
    assert config.routes[0].method == "GET"


def test_load_json_config(tmp_path):
    path = tmp_path / "deck.json"
    path.write_text(json.dumps({
        "routes": [{"path": "/", "pipeline": [{"value": {"$now": None}}]}],
    }))
    config = load_config(path)
    assert config.routes[0].pipeline[0].value.op == "$now"


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_load_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("routes: [unclosed")
    with pytest.raises(ConfigLoadError, match="Invalid YAML"):
        load_config(path)


def test_load_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(ConfigLoadError, match="Invalid JSON"):
        load_config(path)


def test_load_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigLoadError, match="must be a mapping"):
        load_config(path)


def test_load_invalid_operator_arguments(tmp_path):
    path = tmp_path / "deck.yaml"
    path.write_text("routes:\n  - path: /\n    pipeline:\n      - value: {$get: 'a..b'}\n")
    with pytest.raises(ConfigLoadError, match="structure invalid"):
        load_config(path)


def test_load_invalid_named_schema(tmp_path):
    path = tmp_path / "deck.yaml"
    path.write_text("schemas:\n  Bad: {type: nope}\n")
    with pytest.raises(ConfigLoadError, match="Schema 'Bad': Invalid JSON Schema"):
        load_config(path)


def test_parse_pipeline():
    steps = parse_pipeline([
        {"name": "a", "value": 1},
        {"value": {"$get": "a"}},
    ])
    assert [s.name for s in steps] == ["a", None]
    with pytest.raises(ConfigLoadError):
        parse_pipeline([{"name": "a"}])


def test_parse_expression():
    assert parse_expression({"$get": "x"}) == GetOp(path="x")
    with pytest.raises(ConfigLoadError, match="Expression invalid"):
        parse_expression({"$add": [1]})
