"""
Shared pytest fixtures and configuration for toolmaster tests.

This module provides:
- Settings cache and logging context cleanup for test isolation
- Virtual-time and blocking schedulers for retry tests
- Instrumented operations for bounded-runner tests

Usage:
    async def test_backoff(virtual_scheduler):
        await retry(op, 3, 0.1, scheduler=virtual_scheduler)
        assert virtual_scheduler.delays == [0.1, 0.2]
"""

import os
import sys
from pathlib import Path
from typing import Generator

import pytest
import structlog

# Ensure toolmaster package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from _support.timing import (  # noqa: E402
    BlockingScheduler,
    ConcurrencyProbe,
    FlakyOperation,
    VirtualScheduler,
)
from toolmaster.core.logging import clear_context  # noqa: E402
from toolmaster.core.settings import reset_settings  # noqa: E402


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolate_toolmaster_state(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Reset cached settings, bound log context and structlog configuration.

    TOOLMASTER_* variables from the developer's shell are removed so that
    defaults are asserted against the code, not the environment.
    """
    for key in [k for k in os.environ if k.startswith("TOOLMASTER_")]:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(Path(__file__).parent)  # keep a stray .env out of settings
    reset_settings()
    clear_context()
    yield
    reset_settings()
    clear_context()
    structlog.reset_defaults()


# =============================================================================
# Timing Fixtures
# =============================================================================


@pytest.fixture
def virtual_scheduler() -> VirtualScheduler:
    """Scheduler that records delays and never actually waits."""
    return VirtualScheduler()


@pytest.fixture
def blocking_scheduler() -> BlockingScheduler:
    """Scheduler that parks every sleep until released."""
    return BlockingScheduler()


@pytest.fixture
def probe() -> ConcurrencyProbe:
    """Instrumented operation factory tracking concurrency high-water mark."""
    return ConcurrencyProbe()


@pytest.fixture
def flaky():
    """Factory for FlakyOperation instances."""
    return FlakyOperation
