"""
Unit tests for settings and logging setup.
"""

import sys

import pytest
from loguru import logger
from pydantic import ValidationError

from skilltree.config import Settings, get_settings
from skilltree.logging_setup import configure_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.streak_threshold == 5
        assert settings.mistake_threshold == 0
        assert settings.grid_columns == 5
        assert settings.max_hearts == 5
        assert settings.review_question_limit == 10

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("SKILLTREE_STREAK_THRESHOLD", "3")
        monkeypatch.setenv("SKILLTREE_LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.streak_threshold == 3
        assert settings.log_level == "DEBUG"

    def test_rejects_out_of_range_passing_score(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, unit_passing_score=120)

    def test_api_config(self):
        settings = Settings(_env_file=None, api_base_url="https://learn.example", api_key="k")

        config = settings.get_api_config()

        assert config["base_url"] == "https://learn.example"
        assert config["retry_attempts"] == 3
        assert settings.has_api_configured()

    def test_hearts_config(self):
        settings = Settings(_env_file=None, hours_per_heart=3)

        assert settings.get_hearts_config() == {"max_hearts": 5, "hours_per_heart": 3, "zaps_per_heart_purchase": 10}

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestConfigureLogging:
    def test_writes_to_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "skilltree.log"
        settings = Settings(_env_file=None, log_file=log_file, log_level="INFO")

        try:
            configure_logging(settings)
            logger.debug("hidden")
            logger.info("attempt started")
        finally:
            logger.remove()
            logger.add(sys.stderr)

        content = log_file.read_text(encoding="utf-8")
        assert "attempt started" in content
        assert "hidden" not in content

    def test_explicit_level_wins(self, tmp_path):
        log_file = tmp_path / "debug.log"
        settings = Settings(_env_file=None, log_file=log_file, log_level="WARNING")

        try:
            configure_logging(settings, level="debug")
            logger.debug("visible")
        finally:
            logger.remove()
            logger.add(sys.stderr)

        assert "visible" in log_file.read_text(encoding="utf-8")
