"""Unit tests for configuration management."""

import os
from unittest.mock import patch

import pytest

from cardlens.utils.config import Settings, ensure_data_dirs


class TestSettings:
    """Test Settings class configuration."""

    def test_settings_default_values(self):
        """Test that Settings has correct default values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.LOG_LEVEL == "INFO"
        assert settings.LOG_FORMAT == "json"
        assert settings.CARD_DB_PATH == "data/cards.db"
        assert settings.CACHE_DB_PATH == "data/cache.db"
        assert settings.PRICE_CACHE_TTL_SECONDS == 3600
        assert settings.PRICING_WINDOW_DAYS == 14
        assert settings.STAGE_MAX_ATTEMPTS == 3
        assert settings.FAKE_THRESHOLD == 0.5
        assert settings.REASONING_URL is None
        assert settings.POKEMON_TCG_API_KEY is None

    def test_settings_from_environment(self):
        """Test that Settings can be configured from environment variables."""
        with patch.dict(os.environ, {
            "LOG_LEVEL": "DEBUG",
            "CARD_DB_PATH": "custom/cards.db",
            "PRICE_CACHE_TTL_SECONDS": "120",
            "REASONING_URL": "http://localhost:9000/reason",
            "EUR_USD_RATE": "1.2",
        }):
            settings = Settings(_env_file=None)

            assert settings.LOG_LEVEL == "DEBUG"
            assert settings.CARD_DB_PATH == "custom/cards.db"
            assert settings.PRICE_CACHE_TTL_SECONDS == 120
            assert settings.REASONING_URL == "http://localhost:9000/reason"
            assert settings.EUR_USD_RATE == 1.2

    def test_settings_case_insensitive(self):
        """Test that Settings is case insensitive."""
        with patch.dict(os.environ, {"log_level": "WARNING", "cache_db_path": "test/cache.db"}):
            settings = Settings(_env_file=None)

            assert settings.LOG_LEVEL == "WARNING"
            assert settings.CACHE_DB_PATH == "test/cache.db"

    def test_settings_validation(self):
        """Test that Settings validates input types."""
        with patch.dict(os.environ, {"STAGE_MAX_ATTEMPTS": "not_a_number"}):
            with pytest.raises(ValueError):
                Settings(_env_file=None)

    def test_blank_optional_strings_become_none(self):
        with patch.dict(os.environ, {"REASONING_URL": "   ", "POKEMON_TCG_API_KEY": ""}):
            settings = Settings(_env_file=None)

            assert settings.REASONING_URL is None
            assert settings.POKEMON_TCG_API_KEY is None

    def test_blank_values_fall_back_to_defaults(self):
        with patch.dict(os.environ, {"LOG_LEVEL": " ", "CARD_DB_PATH": "", "CACHE_DB_PATH": "  "}):
            settings = Settings(_env_file=None)

            assert settings.LOG_LEVEL == "INFO"
            assert settings.CARD_DB_PATH == "data/cards.db"
            assert settings.CACHE_DB_PATH == "data/cache.db"

    def test_unknown_log_format_defaults_to_json(self):
        with patch.dict(os.environ, {"LOG_FORMAT": "xml"}):
            assert Settings(_env_file=None).LOG_FORMAT == "json"
        with patch.dict(os.environ, {"LOG_FORMAT": "Console"}):
            assert Settings(_env_file=None).LOG_FORMAT == "console"

    def test_event_sink_choice(self):
        with patch.dict(os.environ, {"EVENT_SINK": " LOG "}):
            assert Settings(_env_file=None).EVENT_SINK == "log"
        with patch.dict(os.environ, {"EVENT_SINK": "kafka"}):
            assert Settings(_env_file=None).EVENT_SINK == "jsonl"


class TestDirectoryFunctions:
    """Test directory creation functions."""

    def test_ensure_data_dirs_creates_directories(self, tmp_path):
        """Test that data, image and database directories are created."""
        settings = Settings(
            _env_file=None,
            DATA_DIR=str(tmp_path / "data"),
            CARD_DB_PATH=str(tmp_path / "db" / "cards.db"),
            CACHE_DB_PATH=str(tmp_path / "cache" / "cache.db"),
            IMAGE_ROOT=str(tmp_path / "images"),
            EVENTS_PATH=str(tmp_path / "events" / "events.jsonl"),
        )

        ensure_data_dirs(settings)

        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "db").is_dir()
        assert (tmp_path / "cache").is_dir()
        assert (tmp_path / "images").is_dir()
        assert (tmp_path / "events").is_dir()

    def test_ensure_data_dirs_is_idempotent(self, tmp_path):
        settings = Settings(_env_file=None, DATA_DIR=str(tmp_path / "data"),
                            CARD_DB_PATH=str(tmp_path / "data" / "cards.db"),
                            CACHE_DB_PATH=str(tmp_path / "data" / "cache.db"),
                            IMAGE_ROOT=str(tmp_path / "data" / "images"),
                            EVENTS_PATH=str(tmp_path / "data" / "events.jsonl"))

        ensure_data_dirs(settings)
        ensure_data_dirs(settings)

        assert (tmp_path / "data" / "images").is_dir()
