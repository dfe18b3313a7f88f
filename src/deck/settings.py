"""Executor settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class ExecutorSettings:
    """Knobs that change how expressions are evaluated and logged.

    Attributes:
        strict_validation: Default for ``$validate`` without an explicit
            ``strict``. Strict failures raise ValidationFailedError,
            lenient ones evaluate to ``false``.
        log_values: Include a preview of each step's value in the
            ``step_complete`` log event.
    """

    strict_validation: bool = True
    log_values: bool = False

    @classmethod
    def from_env(cls) -> ExecutorSettings:
        """Create settings from environment variables.

        Reads DECK_STRICT_VALIDATION and DECK_LOG_VALUES; ``1``, ``true``,
        ``yes`` and ``on`` (any case) are true, anything else is false.
        Unset variables keep the defaults.
        """
        return cls(
            strict_validation=_env_flag("DECK_STRICT_VALIDATION", True),
            log_values=_env_flag("DECK_LOG_VALUES", False),
        )
