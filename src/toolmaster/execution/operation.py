"""The Operation contract shared by retry() and run_bounded().

An operation is any zero-argument callable. Calling it may return an
awaitable (the usual case: a coroutine function, or a lambda returning a
coroutine) or a plain value. Either way :func:`invoke` yields the outcome,
and an exception raised synchronously by the call is treated exactly like
one raised while awaiting.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

Operation = Callable[[], Awaitable[T] | T]


async def invoke(operation: Operation[T]) -> T:
    """Call ``operation`` once and await its result if needed."""
    outcome = operation()
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome


def operation_name(operation: Any) -> str:
    """Human-readable name used in logs and error context."""
    name = getattr(operation, "__qualname__", None) or getattr(operation, "__name__", None)
    if name:
        return name
    func = getattr(operation, "func", None)  # functools.partial
    if func is not None:
        return operation_name(func)
    return repr(operation)


__all__ = ["Operation", "invoke", "operation_name"]
