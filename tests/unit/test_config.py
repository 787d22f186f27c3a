"""Unit tests for configuration and settings."""
import pytest

from quickroom.config import Settings, get_settings, reset_settings_cache


class TestSettings:
    """Test configuration management."""

    def test_get_settings_returns_same_instance(self):
        """get_settings is cached."""
        assert get_settings() is get_settings()

    def test_reset_settings_cache(self):
        """After a reset a fresh instance is built."""
        settings1 = get_settings()
        reset_settings_cache()
        assert get_settings() is not settings1

    def test_rate_limiting_disabled_for_tests(self):
        """Test the test environment turns rate limiting off."""
        assert get_settings().rate_limiting_enabled is False

    def test_notification_backend_defaults_to_log(self, monkeypatch):
        """Test notifications are logged unless configured otherwise."""
        monkeypatch.delenv("NOTIFICATION_BACKEND", raising=False)
        assert Settings().notification_backend == "log"

    def test_notification_backend_from_environment(self, monkeypatch):
        """Test the broker settings are read from the environment."""
        monkeypatch.setenv("NOTIFICATION_BACKEND", "rabbitmq")
        monkeypatch.setenv("RABBITMQ_HOST", "broker.internal")
        settings = Settings()
        assert settings.notification_backend == "rabbitmq"
        assert settings.rabbitmq_host == "broker.internal"

    def test_unknown_notification_backend_rejected(self, monkeypatch):
        """Test an unsupported backend name fails validation."""
        monkeypatch.setenv("NOTIFICATION_BACKEND", "carrier-pigeon")
        with pytest.raises(ValueError):
            Settings()

    def test_service_ports_configuration(self):
        """Test each service has its own default port."""
        settings = get_settings()

        assert settings.users_service_port == 8001
        assert settings.rooms_service_port == 8002
        assert settings.bookings_service_port == 8003
        assert settings.resources_service_port == 8004
