"""
Unit tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from resource_server.settings import load_settings


class TestSettings:
    """Test cases for load_settings()."""

    def test_defaults(self):
        settings = load_settings({})
        assert settings.cache_enabled is True
        assert settings.cache_strategy == "time-based"
        assert settings.cache_max_size == 1000
        assert settings.cache_max_age == 300
        assert settings.cache_single_flight is False
        assert settings.audit_log_enabled is True
        assert settings.log_level == "INFO"

    def test_environment_values(self):
        settings = load_settings(
            {
                "CACHE_ENABLED": "false",
                "CACHE_STRATEGY": "lru",
                "CACHE_MAX_AGE": "60",
                "CACHE_RESOURCE_SPECIFIC_TTL": '{"Machine": 900}',
                "CACHE_SINGLE_FLIGHT": "true",
                "MAAS_API_URL": "http://maas.internal:5240/MAAS",
                "LOG_LEVEL": "debug",
            }
        )
        assert settings.cache_enabled is False
        assert settings.cache_strategy == "lru"
        assert settings.cache_resource_specific_ttl == {"Machine": 900}
        assert settings.cache_single_flight is True
        assert settings.maas_api_url == "http://maas.internal:5240/MAAS"
        assert settings.log_level == "DEBUG"

    def test_unrelated_variables_are_ignored(self):
        settings = load_settings({"PATH": "/usr/bin", "CACHE_MAX_SIZE": "5"})
        assert settings.cache_max_size == 5

    @pytest.mark.parametrize(
        "env",
        [
            {"CACHE_MAX_SIZE": "0"},
            {"CACHE_MAX_AGE": "-1"},
            {"CACHE_STRATEGY": "fifo"},
            {"CACHE_RESOURCE_SPECIFIC_TTL": '{"Machine": 0}'},
        ],
    )
    def test_invalid_values_raise(self, env):
        with pytest.raises(ValidationError):
            load_settings(env)

    def test_cache_config(self):
        config = load_settings(
            {"CACHE_MAX_AGE": "30", "CACHE_RESOURCE_SPECIFIC_TTL": '{"Tags": 10}'}
        ).cache_config()
        assert config.max_age_seconds == 30
        assert config.per_resource_ttl == {"Tags": 10}
        assert config.strategy == "time-based"
