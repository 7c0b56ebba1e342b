"""Tests for core.settings module.

Covers:
- ToolmasterSettings defaults
- TOOLMASTER_* environment overrides
- Field validation
- Cached accessor and retry_defaults()
"""

import pytest
from pydantic import ValidationError

from toolmaster.core.settings import (
    ToolmasterSettings,
    get_settings,
    reset_settings,
    retry_defaults,
)


class TestDefaults:
    def test_retry_defaults(self):
        s = ToolmasterSettings()
        assert s.retry_max_retries == 3
        assert s.retry_initial_delay == 1.0
        assert s.retry_max_delay is None

    def test_concurrency_default(self):
        assert ToolmasterSettings().concurrency == 5

    def test_observability_defaults(self):
        s = ToolmasterSettings()
        assert s.log_level == "INFO"
        assert s.json_logs is None


class TestEnvOverride:
    def test_concurrency_from_env(self, monkeypatch):
        monkeypatch.setenv("TOOLMASTER_CONCURRENCY", "12")
        assert ToolmasterSettings().concurrency == 12

    def test_retry_fields_from_env(self, monkeypatch):
        monkeypatch.setenv("TOOLMASTER_RETRY_MAX_RETRIES", "0")
        monkeypatch.setenv("TOOLMASTER_RETRY_INITIAL_DELAY", "0.25")
        monkeypatch.setenv("TOOLMASTER_RETRY_MAX_DELAY", "30")
        s = ToolmasterSettings()
        assert s.retry_max_retries == 0
        assert s.retry_initial_delay == 0.25
        assert s.retry_max_delay == 30.0

    def test_log_level_is_normalised(self, monkeypatch):
        monkeypatch.setenv("TOOLMASTER_LOG_LEVEL", "debug")
        assert ToolmasterSettings().log_level == "DEBUG"

    def test_unprefixed_vars_are_ignored(self, monkeypatch):
        monkeypatch.setenv("CONCURRENCY", "99")
        assert ToolmasterSettings().concurrency == 5


class TestValidation:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("concurrency", 0),
            ("concurrency", -3),
            ("retry_max_retries", -1),
            ("retry_initial_delay", -0.5),
            ("retry_max_delay", 0),
            ("retry_initial_delay", float("nan")),
            ("retry_max_delay", float("nan")),
            ("log_level", "LOUD"),
        ],
    )
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            ToolmasterSettings(**{field: value})


class TestAccessors:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_rereads_env(self, monkeypatch):
        assert get_settings().concurrency == 5
        monkeypatch.setenv("TOOLMASTER_CONCURRENCY", "2")
        assert get_settings().concurrency == 5
        reset_settings()
        assert get_settings().concurrency == 2

    def test_retry_defaults(self):
        s = ToolmasterSettings(retry_max_retries=5, retry_initial_delay=0.1, retry_max_delay=2.0)
        assert retry_defaults(s) == {"max_retries": 5, "initial_delay": 0.1, "max_delay": 2.0}

    def test_retry_defaults_uses_global_settings(self, monkeypatch):
        monkeypatch.setenv("TOOLMASTER_RETRY_MAX_RETRIES", "7")
        assert retry_defaults()["max_retries"] == 7
