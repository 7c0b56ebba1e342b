"""
Structured error types for the toolmaster execution core.

Every error raised by toolmaster itself derives from ToolmasterError and
carries enough metadata to be logged, routed and (where it makes sense)
retried:

- **Category:** What kind of error (config, operation, cancellation, timeout)
- **Retryable:** Whether re-running the same operation could succeed
- **Context:** Operation name, slot index, attempt number, batch id
- **Cause:** The underlying exception, chained as ``__cause__``

Errors raised *by user operations* are never wrapped on the way out of
``retry()`` and never altered inside a ResultSet slot. Wrapping only happens
when the caller explicitly lifts a failed slot with
``ResultSet.unwrap_all()``, which raises OperationFailure.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     ToolmasterError                          │
        │        (category, retryable, context, cause)                 │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigError           OperationFailure                      │
        │  (CONFIG)              (OPERATION, index + cause)            │
        │       │                                                      │
        │  InvalidConfigError    OperationCancelledError               │
        │                        (CANCELLED, reason)                   │
        └─────────────────────────────────────────────────────────────┘

        TimeoutExpired lives in toolmaster.execution.timeout and derives
        from the built-in TimeoutError.

Examples:
    >>> error = InvalidConfigError("concurrency", 0)
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.retryable
    False

    >>> failure = OperationFailure(2, ValueError("boom"))
    >>> failure.index
    2
    >>> failure.cause
    ValueError('boom')

Tags:
    error-handling, exception-hierarchy, retry-logic, toolmaster
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    # Caller mistakes (never retryable)
    CONFIG = "CONFIG"             # Invalid concurrency, negative delay, ...

    # Operation outcomes
    OPERATION = "OPERATION"       # A user operation raised
    TIMEOUT = "TIMEOUT"           # A deadline expired
    NETWORK = "NETWORK"           # Connection / OS level failures
    CANCELLED = "CANCELLED"       # Caller abandoned the work

    # Internal errors
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to toolmaster errors.

    Only fields that were set are emitted by ``to_dict()``, so the context
    can be splatted straight into a structlog event.

    Attributes:
        operation: Name of the operation (function ``__qualname__`` or
            the name given to ``BoundedParallelRunner.add``)
        index: Position of the operation in a bounded batch
        attempt: 1-based attempt number inside a retry loop
        batch_id: Identifier of the bounded batch
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    index: int | None = None
    attempt: int | None = None
    batch_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "index", "attempt", "batch_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ToolmasterError(Exception):
    """
    Base exception for all errors raised by toolmaster.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    only pass what differs from the norm.

    Examples:
        >>> error = ToolmasterError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(operation="fetch", attempt=2).context.attempt
        2
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ToolmasterError:
        """
        Add context to this error (fluent API).

        Unknown keys land in ``context.metadata``.
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(ToolmasterError):
    """
    Configuration error.

    Never retryable - the call site must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """A parameter value is invalid (e.g. ``concurrency=0``)."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# OPERATION ERRORS
# =============================================================================


class OperationFailure(ToolmasterError):
    """
    A single operation of a bounded batch failed.

    Raised by ``ResultSet.unwrap_all()`` when the caller wants exceptions
    instead of Err slots. The original exception is kept unmodified in
    ``cause`` and chained as ``__cause__``.
    """

    default_category = ErrorCategory.OPERATION

    def __init__(self, index: int, cause: BaseException, operation: str | None = None):
        self.index = index
        name = f" ({operation})" if operation else ""
        super().__init__(
            f"Operation {index}{name} failed: {type(cause).__name__}: {cause}",
            retryable=is_retryable(cause),
            context=ErrorContext(operation=operation, index=index),
            cause=cause,
        )


class OperationCancelledError(ToolmasterError):
    """Work was abandoned because a CancellationToken fired."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(f"Operation cancelled: {reason}" if reason else "Operation cancelled")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ToolmasterError):
        return error.retryable
    # Built-in TimeoutError covers TimeoutExpired too
    retryable_types = (
        ConnectionError,
        TimeoutError,
        OSError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ToolmasterError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, Exception):
        return ErrorCategory.OPERATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ToolmasterError",
    "ConfigError",
    "InvalidConfigError",
    "OperationFailure",
    "OperationCancelledError",
    "is_retryable",
    "categorize_error",
]
