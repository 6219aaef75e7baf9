"""Tests for settings and logging configuration."""

import logging
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from turnflow.config import Settings, configure_logging


@pytest.mark.unit
class TestSettings:
    """Tests for Settings."""

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables are read through their aliases."""
        monkeypatch.setenv("TURNFLOW_LOG_LEVEL", " debug ")
        monkeypatch.setenv("TURNFLOW_MAX_LLM_CALLS", "7")

        settings = Settings()

        assert settings.log_level == "DEBUG"
        assert settings.default_max_llm_calls == 7

    def test_invalid_log_level(self) -> None:
        """Test unknown level names are rejected."""
        with pytest.raises(ValidationError, match="TURNFLOW_LOG_LEVEL"):
            Settings(log_level="chatty")


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_applies_level_and_format(self) -> None:
        """Test root logging is configured from the given settings."""
        settings = Settings(log_level="warning", log_format="%(levelname)s %(message)s")

        with patch("turnflow.config.logging.basicConfig") as basic_config:
            configure_logging(settings)

        basic_config.assert_called_once_with(
            level="WARNING", format="%(levelname)s %(message)s"
        )

    def test_defaults_to_cached_settings(self) -> None:
        """Test the cached settings are used when none are passed."""
        settings = Settings(log_level="ERROR")

        with (
            patch("turnflow.config.get_settings", return_value=settings),
            patch("turnflow.config.logging.basicConfig") as basic_config,
        ):
            configure_logging()

        assert basic_config.call_args.kwargs["level"] == "ERROR"
        assert logging.getLevelName(basic_config.call_args.kwargs["level"]) == logging.ERROR
