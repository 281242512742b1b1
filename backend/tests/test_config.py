"""Tests for configuration and logging setup."""

import json
import logging

import pytest

from config import Config
from utils.logger import JSONFormatter


class TestConfig:
    """Tests for configuration validation."""

    def test_defaults(self):
        """Test default windows and tick."""
        config = Config(lock_max_hold_seconds=None)
        assert config.tick_interval_seconds > 0
        assert config.min_time_game <= config.max_time_game
        assert config.min_time_transfer <= config.max_time_transfer

    @pytest.mark.parametrize("overrides", [
        {"tick_interval_seconds": 0},
        {"lock_poll_interval_seconds": 0},
        {"lock_max_hold_seconds": -1},
        {"min_time_game": 2000, "max_time_game": 1200},
        {"min_time_transfer": 90000, "max_time_transfer": 86400},
        {"log_format": "xml"},
    ])
    def test_invalid(self, overrides):
        """Test invalid settings fail at construction."""
        with pytest.raises(ValueError):
            Config(**overrides)


class TestJSONFormatter:
    """Tests for structured log output."""

    def test_extra_fields(self):
        """Test extra fields are merged into the JSON record."""
        record = logging.LogRecord("refresh", logging.INFO, __file__, 1, "Refreshing %s", ("EPL",), None)
        record.league = "EPL"

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Refreshing EPL"
        assert data["level"] == "INFO"
        assert data["league"] == "EPL"
