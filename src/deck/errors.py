"""Custom exception hierarchy for deck.

Everything the package raises inherits from DeckError so callers can
catch broadly or narrowly as needed. Failures raised while evaluating an
expression are ExecutionErrors and carry an ErrorKind that the HTTP
layer maps to a status code.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    PATH_NOT_FOUND = "path_not_found"
    TYPE_MISMATCH = "type_mismatch"
    DIVISION_BY_ZERO = "division_by_zero"
    VALIDATION_FAILED = "validation_failed"
    STORAGE = "storage"
    CANCELLED = "cancelled"


class DeckError(Exception):
    """Base for all deck errors."""


class ConfigLoadError(DeckError):
    """Config document missing, unparseable, or structurally invalid."""


class PathSyntaxError(DeckError, ValueError):
    """A dot path or JSONPath expression could not be parsed."""


class InvalidTemplateError(DeckError, ValueError):
    """A $renderString template uses anything besides placeholders."""


class DuplicateBindingError(DeckError):
    """A name was bound twice in the same pipeline run."""


class ExecutionError(DeckError):
    """Base for failures raised while evaluating an expression."""

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class PathNotFoundError(ExecutionError):
    kind = ErrorKind.PATH_NOT_FOUND

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"Path not found: {path}")


class TypeMismatchError(ExecutionError):
    kind = ErrorKind.TYPE_MISMATCH

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        actual: str | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        if expected and actual:
            message = f"{message} (expected {expected}, got {actual})"
        super().__init__(message)


class DivisionByZeroError(ExecutionError):
    kind = ErrorKind.DIVISION_BY_ZERO

    def __init__(self, message: str = "Division by zero") -> None:
        super().__init__(message)


class ValidationFailedError(ExecutionError):
    """Data did not match a JSON Schema in strict $validate mode."""

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = list(details or [])
        if self.details:
            message = message + "".join(f"\n  - {d}" for d in self.details)
        super().__init__(message)


class StorageError(ExecutionError):
    """A DatabaseProvider call failed."""

    kind = ErrorKind.STORAGE


class ExecutionCancelledError(ExecutionError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Pipeline execution cancelled") -> None:
        super().__init__(message)


class EarlyReturn(Exception):
    """Raised by ``$return`` to unwind to the enclosing pipeline.

    Not a DeckError: it is control flow, and run_pipeline turns it into a
    ``returned`` PipelineResult.
    """

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__("Early return")
