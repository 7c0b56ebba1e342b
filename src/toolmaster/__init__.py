"""
Toolmaster - async execution helpers: retry with backoff and bounded fan-out.

    >>> from toolmaster import retry, run_bounded
    >>> value = await retry(fetch, max_retries=3, initial_delay=0.5)
    >>> results = await run_bounded([lambda: fetch(u) for u in urls], concurrency=5)
"""

__version__ = "4.2.0"

from toolmaster.core.errors import (
    ConfigError,
    ErrorCategory,
    InvalidConfigError,
    OperationCancelledError,
    OperationFailure,
    ToolmasterError,
)
from toolmaster.core.result import Err, Ok, Result
from toolmaster.execution import (
    BoundedParallelRunner,
    CancellationToken,
    ExponentialBackoff,
    FailurePolicy,
    ResultSet,
    RetryContext,
    TimeoutExpired,
    retry,
    run_bounded,
    with_retry,
)

__all__ = [
    "__version__",
    "ConfigError",
    "ErrorCategory",
    "InvalidConfigError",
    "OperationCancelledError",
    "OperationFailure",
    "ToolmasterError",
    "Err",
    "Ok",
    "Result",
    "BoundedParallelRunner",
    "CancellationToken",
    "ExponentialBackoff",
    "FailurePolicy",
    "ResultSet",
    "RetryContext",
    "TimeoutExpired",
    "retry",
    "run_bounded",
    "with_retry",
]
