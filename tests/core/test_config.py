"""
Configuration Tests.

============================================================
PURPOSE
============================================================
Tests for environment loading and validation.

============================================================
"""

import pytest

from core.config import PortalConfig
from core.constants import (
    DEFAULT_GATEWAY_LATENCY_SECONDS,
    DEFAULT_GATEWAY_SUCCESS_PROBABILITY,
    DEFAULT_STOP_TIMEOUT_SECONDS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
)
from core.exceptions import ConfigurationError, PortalException


class TestDefaults:
    """Tests for default configuration."""

    def test_defaults(self):
        """Test documented defaults."""
        config = PortalConfig()

        assert config.gateway.success_probability == DEFAULT_GATEWAY_SUCCESS_PROBABILITY == 0.9
        assert config.gateway.latency_seconds == DEFAULT_GATEWAY_LATENCY_SECONDS
        assert config.scheduler.interval_seconds == DEFAULT_SYNC_INTERVAL_SECONDS
        assert config.scheduler.stop_timeout_seconds == DEFAULT_STOP_TIMEOUT_SECONDS
        assert config.audit.retention_cap == 2000
        assert config.storage.use_memory is False
        assert config.validate() == []

    def test_sections_are_independent(self):
        """Test two configs do not share section instances."""
        first = PortalConfig()
        second = PortalConfig()
        first.gateway.success_probability = 0.1

        assert second.gateway.success_probability == 0.9


class TestFromEnv:
    """Tests for PortalConfig.from_env."""

    def test_reads_prefixed_keys(self):
        """Test each section picks up its variables."""
        config = PortalConfig.from_env({
            "SWIFTPOLICY_DATABASE_URL": "sqlite:///other.db",
            "SWIFTPOLICY_USE_MEMORY_STORE": "yes",
            "SWIFTPOLICY_AUDIT_RETENTION_CAP": "500",
            "SWIFTPOLICY_MID_LATENCY_SECONDS": "0.5",
            "SWIFTPOLICY_MID_SUCCESS_PROBABILITY": "0.75",
            "SWIFTPOLICY_MID_SYNC_INTERVAL_SECONDS": "15",
            "SWIFTPOLICY_MID_SYNC_ENABLED": "false",
            "SWIFTPOLICY_MID_STOP_TIMEOUT_SECONDS": "5",
            "SWIFTPOLICY_API_PORT": "9000",
            "SWIFTPOLICY_LOG_LEVEL": "debug",
        })

        assert config.storage.database_url == "sqlite:///other.db"
        assert config.storage.use_memory is True
        assert config.audit.retention_cap == 500
        assert config.gateway.latency_seconds == 0.5
        assert config.gateway.success_probability == 0.75
        assert config.scheduler.interval_seconds == 15.0
        assert config.scheduler.enabled is False
        assert config.scheduler.stop_timeout_seconds == 5.0
        assert config.api.port == 9000
        assert config.logging.level == "DEBUG"

    def test_ignores_unprefixed_and_empty(self):
        """Test only non-empty prefixed variables apply."""
        config = PortalConfig.from_env({
            "API_PORT": "1",
            "SWIFTPOLICY_API_HOST": "",
        })

        assert config.api.port == 8085
        assert config.api.host == "127.0.0.1"

    @pytest.mark.parametrize("key,value", [
        ("SWIFTPOLICY_API_PORT", "eighty"),
        ("SWIFTPOLICY_MID_SYNC_ENABLED", "maybe"),
        ("SWIFTPOLICY_MID_SUCCESS_PROBABILITY", "high"),
    ])
    def test_invalid_values(self, key, value):
        """Test unparsable values raise ConfigurationError naming the key."""
        with pytest.raises(ConfigurationError) as exc_info:
            PortalConfig.from_env({key: value})

        assert exc_info.value.config_key == key
        assert isinstance(exc_info.value, PortalException)

    def test_dotenv_file(self, tmp_path, monkeypatch):
        """Test values are loaded from a .env file."""
        monkeypatch.delenv("SWIFTPOLICY_MID_SYNC_INTERVAL_SECONDS", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("SWIFTPOLICY_MID_SYNC_INTERVAL_SECONDS=42\n")

        config = PortalConfig.from_env(dotenv_path=str(env_file))

        assert config.scheduler.interval_seconds == 42.0


class TestValidate:
    """Tests for PortalConfig.validate."""

    def test_reports_each_problem(self):
        """Test every out-of-range value is reported."""
        config = PortalConfig()
        config.gateway.success_probability = 1.5
        config.gateway.timeout_seconds = 0
        config.scheduler.interval_seconds = -1
        config.audit.retention_cap = 0
        config.api.port = 70000

        errors = config.validate()

        assert len(errors) == 5
        assert any("success_probability" in e for e in errors)
        assert any("api.port" in e for e in errors)

    def test_rejects_non_positive_stop_timeout(self):
        """Test a zero stop timeout is reported."""
        config = PortalConfig()
        config.scheduler.stop_timeout_seconds = 0

        assert config.validate() == ["scheduler.stop_timeout_seconds must be positive"]
