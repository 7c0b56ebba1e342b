"""Toolmaster Core -- errors, result envelope, logging and settings.

Architecture::

    errors.py     Structured error hierarchy (ToolmasterError, InvalidConfigError)
    result.py     Result[T] envelope (Ok / Err / collect + partition)
    logging.py    structlog configuration + context binding
    settings.py   pydantic-settings defaults (TOOLMASTER_* env vars)

Nothing in ``toolmaster.core`` imports from ``toolmaster.execution``.
"""

from .errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    OperationCancelledError,
    OperationFailure,
    ToolmasterError,
    categorize_error,
    is_retryable,
)
from .result import (
    Err,
    Ok,
    Result,
    collect_results,
    partition_results,
)

__all__ = [
    # errors
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "OperationCancelledError",
    "OperationFailure",
    "ToolmasterError",
    "categorize_error",
    "is_retryable",
    # result
    "Err",
    "Ok",
    "Result",
    "collect_results",
    "partition_results",
]
