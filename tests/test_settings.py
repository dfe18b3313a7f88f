"""Tests for ExecutorSettings."""

from __future__ import annotations

import pytest

from deck.settings import ExecutorSettings


def test_defaults():
    settings = ExecutorSettings()
    assert settings.strict_validation is True
    assert settings.log_values is False


def test_from_env_defaults(monkeypatch):
    monkeypatch.delenv("DECK_STRICT_VALIDATION", raising=False)
    monkeypatch.delenv("DECK_LOG_VALUES", raising=False)
    assert ExecutorSettings.from_env() == ExecutorSettings()


@pytest.mark.parametrize("raw", ["1", "true", "YES", " on "])
def test_from_env_true_values(monkeypatch, raw):
    monkeypatch.setenv("DECK_LOG_VALUES", raw)
    assert ExecutorSettings.from_env().log_values is True


@pytest.mark.parametrize("raw", ["0", "false", "off", "nope"])
def test_from_env_false_values(monkeypatch, raw):
    monkeypatch.setenv("DECK_STRICT_VALIDATION", raw)
    assert ExecutorSettings.from_env().strict_validation is False


def test_blank_env_keeps_default(monkeypatch):
    monkeypatch.setenv("DECK_STRICT_VALIDATION", "  ")
    assert ExecutorSettings.from_env().strict_validation is True


def test_settings_are_frozen():
    with pytest.raises(AttributeError):
        ExecutorSettings().log_values = True  # type: ignore[misc]
