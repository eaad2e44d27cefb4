"""Tests for environment-driven settings."""

from datetime import timezone

import pytest

from errors import ConfigError
from settings import Settings


class TestSettingsFromEnv:

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.mongodb_uri is None
        assert settings.mongodb_database == "visitor_analytics"
        assert settings.mongodb_collection == "visitors"
        assert settings.storage_backend == "auto"
        assert settings.rate_limit_window_seconds == 900
        assert settings.rate_limit_max_requests == 1000
        assert settings.max_payload_bytes == 10 * 1024 * 1024
        assert settings.storage_timeout_seconds == 5.0
        assert settings.query_timeout_seconds == 10.0
        assert settings.event_retention_days == 0
        assert settings.port == 3001
        assert settings.admin_token == ""
        assert settings.tz is timezone.utc

    def test_overrides(self):
        settings = Settings.from_env({
            "MONGODB_URI": "mongodb://db:27017",
            "STORAGE_BACKEND": "MongoDB",
            "ADMIN_TOKEN": "secret",
            "RATE_LIMIT_MAX_REQUESTS": "50",
            "STORAGE_TIMEOUT_SECONDS": "2.5",
            "EVENT_RETENTION_DAYS": "30",
            "LOG_LEVEL": "debug",
        })

        assert settings.mongodb_uri == "mongodb://db:27017"
        assert settings.storage_backend == "mongodb"
        assert settings.admin_token == "secret"
        assert settings.rate_limit_max_requests == 50
        assert settings.storage_timeout_seconds == 2.5
        assert settings.event_retention_days == 30
        assert settings.log_level == "DEBUG"

    def test_blank_values_use_defaults(self):
        settings = Settings.from_env({"MONGODB_URI": "", "PORT": " "})
        assert settings.mongodb_uri is None
        assert settings.port == 3001

    @pytest.mark.parametrize("env", [
        {"RATE_LIMIT_MAX_REQUESTS": "lots"},
        {"RATE_LIMIT_MAX_REQUESTS": "0"},
        {"RATE_LIMIT_WINDOW_SECONDS": "-1"},
        {"EVENT_RETENTION_DAYS": "-7"},
        {"STORAGE_TIMEOUT_SECONDS": "0"},
        {"QUERY_TIMEOUT_SECONDS": "fast"},
        {"STORAGE_BACKEND": "redis"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ConfigError):
            Settings.from_env(env)

    def test_named_timezone(self):
        settings = Settings.from_env({"STATS_TIMEZONE": "Europe/Berlin"})
        assert settings.tz.key == "Europe/Berlin"

    def test_unknown_timezone(self):
        settings = Settings.from_env({"STATS_TIMEZONE": "Mars/Olympus_Mons"})
        with pytest.raises(ConfigError):
            settings.tz
