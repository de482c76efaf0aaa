"""Tests for settings loading and logging setup."""

from __future__ import annotations

import structlog

from aria_control.config import AriaSettings
from aria_control.processor import configure_logging


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ARIA_DATABASE_URL", raising=False)
        config = AriaSettings(_env_file=None)
        assert config.database_url.startswith("sqlite")
        assert config.log_format == "json"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ARIA_DATABASE_URL", "sqlite:///other.db")
        monkeypatch.setenv("ARIA_CUSTODY_TIMEOUT_SECONDS", "2.5")
        config = AriaSettings(_env_file=None)
        assert config.database_url == "sqlite:///other.db"
        assert config.custody_timeout_seconds == 2.5


class TestLogging:
    def test_console_rendering(self, capsys):
        configure_logging(AriaSettings(_env_file=None, log_format="console", log_level="DEBUG"))
        structlog.get_logger("test").info("aria_control.test.event", answer=42)
        assert "aria_control.test.event" in capsys.readouterr().out
        structlog.reset_defaults()
