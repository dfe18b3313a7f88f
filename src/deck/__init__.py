"""deck: declarative request pipelines built from JSON operator expressions."""

from deck.context import Context
from deck.errors import (
    ConfigLoadError,
    DeckError,
    DivisionByZeroError,
    DuplicateBindingError,
    EarlyReturn,
    ErrorKind,
    ExecutionCancelledError,
    ExecutionError,
    InvalidTemplateError,
    PathNotFoundError,
    PathSyntaxError,
    StorageError,
    TypeMismatchError,
    ValidationFailedError,
)
from deck.executor import Executor, evaluate, run_pipeline
from deck.loader import load_config, parse_expression, parse_pipeline
from deck.models import DeckConfig, PipelineResult, PipelineStep, Route, StepResult
from deck.pipeline_logger import configure_logging
from deck.providers import (
    FixedClock,
    InMemoryDatabase,
    Providers,
    StaticRequest,
    SystemClock,
)
from deck.settings import ExecutorSettings
from deck.validator import (
    Diagnostic,
    Severity,
    ValidationResult,
    load_and_validate_config,
    validate_config,
    validate_pipeline,
)

__all__ = [
    "configure_logging",
    "Context",
    "Diagnostic",
    "evaluate",
    "Executor",
    "ExecutorSettings",
    "load_and_validate_config",
    "load_config",
    "parse_expression",
    "parse_pipeline",
    "run_pipeline",
    "Severity",
    "validate_config",
    "validate_pipeline",
    "ValidationResult",
    "DeckConfig",
    "PipelineResult",
    "PipelineStep",
    "Route",
    "StepResult",
    "FixedClock",
    "InMemoryDatabase",
    "Providers",
    "StaticRequest",
    "SystemClock",
    "ConfigLoadError",
    "DeckError",
    "DivisionByZeroError",
    "DuplicateBindingError",
    "EarlyReturn",
    "ErrorKind",
    "ExecutionCancelledError",
    "ExecutionError",
    "InvalidTemplateError",
    "PathNotFoundError",
    "PathSyntaxError",
    "StorageError",
    "TypeMismatchError",
    "ValidationFailedError",
]
