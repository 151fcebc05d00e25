"""Unit tests for core.config_manager module."""

import logging
import os
from pathlib import Path
from types import SimpleNamespace

import pytest

from occurrence_engine.core.config_manager import (
    ConfigManager,
    EngineConfig,
    get_config_value,
    parse_env_file,
)

pytestmark = pytest.mark.unit


class TestParseEnvFile:
    """Tests for .env parsing."""

    def test_missing_file_is_empty(self, tmp_path: Path):
        assert parse_env_file(tmp_path / "missing.env") == {}

    def test_parses_pairs_comments_and_quotes(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# engine settings\n"
            "\n"
            "OCCURRENCE_ENGINE_TIMEZONE='America/Chicago'\n"
            'OCCURRENCE_ENGINE_WINDOW_DAYS="30"\n'
            "export OCCURRENCE_ENGINE_ENV=staging\n"
            "NOT A PAIR\n",
            encoding="utf-8",
        )

        assert parse_env_file(env_file) == {
            "OCCURRENCE_ENGINE_TIMEZONE": "America/Chicago",
            "OCCURRENCE_ENGINE_WINDOW_DAYS": "30",
            "OCCURRENCE_ENGINE_ENV": "staging",
        }


class TestEngineConfig:
    """Tests for EngineConfig construction."""

    def test_defaults(self):
        config = EngineConfig()

        assert config.timezone == "America/Denver"
        assert config.default_window_days == 90
        assert config.max_occurrences_per_event == 40
        assert config.max_total_occurrences == 500
        assert config.max_events == 200

    def test_from_settings_object(self):
        settings = SimpleNamespace(timezone="UTC", default_window_days=14)

        config = EngineConfig.from_settings(settings)

        assert config.timezone == "UTC"
        assert config.default_window_days == 14
        assert config.max_occurrences_per_event == 40

    def test_from_settings_dict(self):
        config = EngineConfig.from_settings({"environment": "ci", "max_total_occurrences": "100"})

        assert config.environment == "ci"
        assert config.max_total_occurrences == 100
        assert config.is_quiet_environment

    def test_get_config_value_handles_none(self):
        assert get_config_value(None, "timezone", "UTC") == "UTC"


class TestConfigManager:
    """Tests for environment-driven configuration."""

    def test_build_config_from_env(self, monkeypatch):
        monkeypatch.setenv("OCCURRENCE_ENGINE_TIMEZONE", "America/New_York")
        monkeypatch.setenv("OCCURRENCE_ENGINE_WINDOW_DAYS", "30")
        monkeypatch.setenv("OCCURRENCE_ENGINE_MAX_OCCURRENCES", "10")
        monkeypatch.setenv("OCCURRENCE_ENGINE_MAX_EVENTS", "25")
        monkeypatch.setenv("OCCURRENCE_ENGINE_ENV", "staging")
        monkeypatch.setenv("OCCURRENCE_ENGINE_AUDIT", "yes")

        cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()

        assert cfg == {
            "timezone": "America/New_York",
            "default_window_days": 30,
            "max_occurrences_per_event": 10,
            "max_events": 25,
            "environment": "staging",
            "audit_enabled": True,
        }

    @pytest.mark.parametrize("value", ["ninety", "0", "-5"])
    def test_invalid_numbers_are_ignored_with_warning(self, monkeypatch, caplog, value):
        monkeypatch.setenv("OCCURRENCE_ENGINE_WINDOW_DAYS", value)

        with caplog.at_level(logging.WARNING, logger="occurrence_engine.core.config_manager"):
            cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()

        assert "default_window_days" not in cfg
        assert "OCCURRENCE_ENGINE_WINDOW_DAYS" in caplog.text

    def test_invalid_audit_flag_is_ignored(self, monkeypatch):
        monkeypatch.setenv("OCCURRENCE_ENGINE_AUDIT", "sometimes")

        cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()

        assert "audit_enabled" not in cfg

    def test_env_file_does_not_override_environment(self, tmp_path: Path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "OCCURRENCE_ENGINE_TIMEZONE=America/Chicago\nOCCURRENCE_ENGINE_WINDOW_DAYS=21\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("OCCURRENCE_ENGINE_TIMEZONE", "UTC")
        # Register the key with monkeypatch so the value loaded below is undone
        monkeypatch.setenv("OCCURRENCE_ENGINE_WINDOW_DAYS", "0")
        monkeypatch.delenv("OCCURRENCE_ENGINE_WINDOW_DAYS")

        manager = ConfigManager(env_file)
        loaded = manager.load_env_file()
        config = manager.build_config_from_env()

        assert loaded == ["OCCURRENCE_ENGINE_WINDOW_DAYS"]
        assert config["timezone"] == "UTC"
        assert config["default_window_days"] == 21
        assert os.environ["OCCURRENCE_ENGINE_WINDOW_DAYS"] == "21"

    def test_load_full_config_returns_engine_config(self, tmp_path: Path):
        config = ConfigManager(tmp_path / ".env").load_full_config()

        assert isinstance(config, EngineConfig)
        assert config.timezone == "America/Denver"
