"""Tests for loading retry policies from .retry-policy.yml"""

from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from recourse.domain.config import DelayMode
from recourse.infrastructure.config.config_manager import (
    ConfigManager,
    ConfigurationError,
    parse_duration,
    resolve_exception_type,
)


class ProjectError(Exception):
    """Exception type referenced from policy files in these tests"""


def _write_config(tmp_path: Path, retry: dict) -> Path:
    config_file = tmp_path / ".retry-policy.yml"
    config_file.write_text(yaml.safe_dump({"retry": retry}), encoding="utf-8")
    return config_file


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    monkeypatch.delenv("RECOURSE_MAX_RETRIES", raising=False)
    monkeypatch.delenv("RECOURSE_MAX_DURATION", raising=False)


class TestParseDuration:
    """Tests for duration strings"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("250ms", timedelta(milliseconds=250)),
            ("2s", timedelta(seconds=2)),
            ("1.5m", timedelta(seconds=90)),
            ("1h", timedelta(hours=1)),
            ("5", timedelta(seconds=5)),
        ],
    )
    def test_units(self, value, expected):
        assert parse_duration(value) == expected

    def test_other_values_pass_through(self):
        assert parse_duration(3) == 3
        assert parse_duration("PT1S") == "PT1S"


class TestConfigManager:
    """Tests for ConfigManager"""

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        policy = ConfigManager().get_policy()
        assert policy.max_retries == 2
        assert policy.delay_mode is DelayMode.NONE

    def test_finds_file_in_parent(self, tmp_path, monkeypatch):
        _write_config(tmp_path, {"max_retries": 7})
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert ConfigManager().get_policy().max_retries == 7

    def test_backoff_policy(self, tmp_path):
        config_file = _write_config(
            tmp_path,
            {
                "backoff": {"delay": "100ms", "max_delay": "2s", "factor": 3},
                "jitter_factor": 0.1,
                "max_duration": "30s",
                "max_attempts": 5,
            },
        )
        policy = ConfigManager(config_file).get_policy()
        assert policy.delay_mode is DelayMode.BACKOFF
        assert policy.delay == timedelta(milliseconds=100)
        assert policy.max_delay == timedelta(seconds=2)
        assert policy.delay_factor == 3.0
        assert policy.jitter_factor == 0.1
        assert policy.max_duration == timedelta(seconds=30)
        assert policy.max_retries == 4

    def test_delay_range_and_jitter(self, tmp_path):
        config_file = _write_config(
            tmp_path, {"delay_range": {"min": 1, "max": 3}, "jitter": "500ms"}
        )
        policy = ConfigManager(str(config_file)).get_policy()
        assert policy.delay_mode is DelayMode.RANDOM
        assert policy.jitter == timedelta(milliseconds=500)

    def test_abort_on_names(self, tmp_path):
        config_file = _write_config(
            tmp_path, {"abort_on": ["PermissionError", f"{__name__}.ProjectError"]}
        )
        policy = ConfigManager(config_file).get_policy()
        assert policy.is_abortable(None, PermissionError()) is True
        assert policy.is_abortable(None, ProjectError()) is True
        assert policy.is_abortable(None, ValueError()) is False

    def test_builder_accepts_handlers(self, tmp_path):
        config_file = _write_config(tmp_path, {"delay": 1})
        handler = lambda event: None  # noqa: E731
        policy = ConfigManager(config_file).builder().on_abort(handler).build()
        assert policy.on_abort is handler

    def test_env_overrides(self, tmp_path, monkeypatch):
        config_file = _write_config(tmp_path, {"max_attempts": 2})
        monkeypatch.setenv("RECOURSE_MAX_RETRIES", "-1")
        monkeypatch.setenv("RECOURSE_MAX_DURATION", "45s")
        policy = ConfigManager(config_file).get_policy()
        assert policy.max_retries == -1
        assert policy.max_duration == timedelta(seconds=45)

    def test_get_dot_notation(self, tmp_path):
        config_file = _write_config(tmp_path, {"max_retries": 4})
        manager = ConfigManager(config_file)
        assert manager.get("retry.max_retries") == 4
        assert manager.get("retry.missing", "fallback") == "fallback"


class TestConfigManagerErrors:
    """Tests for configuration errors raised while loading"""

    def test_unknown_key(self, tmp_path):
        config_file = _write_config(tmp_path, {"retries": 3})
        with pytest.raises(ConfigurationError, match="retry.retries"):
            ConfigManager(config_file)

    def test_conflicting_delay_modes(self, tmp_path):
        config_file = _write_config(tmp_path, {"delay": 1, "delay_range": {"min": 1, "max": 2}})
        with pytest.raises(ConfigurationError, match="only one of"):
            ConfigManager(config_file)

    def test_retries_and_attempts(self, tmp_path):
        config_file = _write_config(tmp_path, {"max_retries": 1, "max_attempts": 2})
        with pytest.raises(ConfigurationError, match="cannot both be set"):
            ConfigManager(config_file)

    def test_jitter_factor_out_of_range(self, tmp_path):
        config_file = _write_config(tmp_path, {"delay": 1, "jitter_factor": 2})
        with pytest.raises(ConfigurationError, match="jitter_factor"):
            ConfigManager(config_file)

    def test_inconsistent_policy_fails_on_build(self, tmp_path):
        config_file = _write_config(tmp_path, {"delay": 10, "max_duration": 5})
        manager = ConfigManager(config_file)
        with pytest.raises(ConfigurationError, match="max_duration"):
            manager.get_policy()

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / ".retry-policy.yml"
        config_file.write_text("retry: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Failed to load config"):
            ConfigManager(config_file)

    def test_unknown_exception_name(self):
        with pytest.raises(ConfigurationError, match="Unknown exception type"):
            resolve_exception_type("NoSuchError")

    def test_non_exception_name(self):
        with pytest.raises(ConfigurationError, match="not an exception type"):
            resolve_exception_type("os.path")
