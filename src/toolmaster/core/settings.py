"""Environment-driven defaults for the execution core.

``retry()`` and ``run_bounded()`` take explicit arguments and never read the
environment on their own. Applications that want operators to tune retry
budgets or batch concurrency without a redeploy read them from here::

    settings = get_settings()
    value = await retry(fetch, **retry_defaults(settings))
    runner = BoundedParallelRunner.from_settings(settings)

Fields
──────
retry_max_retries   : additional attempts after the first failure
retry_initial_delay : seconds before the first retry (doubled each time)
retry_max_delay     : optional cap on a single backoff delay (None = no cap)
concurrency         : in-flight limit for bounded batches
log_level           : structlog log level
json_logs           : force JSON (True) / console (False) / auto (None)

Every field reads ``TOOLMASTER_<FIELD>`` from the environment or ``.env``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ToolmasterSettings(BaseSettings):
    """Defaults for retry and bounded-concurrency helpers."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLMASTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Retry ────────────────────────────────────────────────────
    retry_max_retries: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0.0, allow_inf_nan=False)
    retry_max_delay: float | None = Field(default=None, allow_inf_nan=False)

    # ── Bounded batches ──────────────────────────────────────────
    concurrency: int = Field(default=5, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("retry_max_delay")
    @classmethod
    def _positive_cap(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("retry_max_delay must be positive when set")
        return v

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> ToolmasterSettings:
    """Return the process-wide settings, loaded once."""
    return ToolmasterSettings()


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()


def retry_defaults(settings: ToolmasterSettings | None = None) -> dict[str, Any]:
    """Keyword arguments for ``retry()`` taken from settings."""
    settings = settings or get_settings()
    return {
        "max_retries": settings.retry_max_retries,
        "initial_delay": settings.retry_initial_delay,
        "max_delay": settings.retry_max_delay,
    }


__all__ = [
    "ToolmasterSettings",
    "get_settings",
    "reset_settings",
    "retry_defaults",
]
