"""
Tests for environment-driven settings.
"""

import pydantic
import pytest

from whatsrelay.app.dependencies import get_settings
from whatsrelay.config import DEFAULT_MESSAGE, AppSettings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for get_settings()."""

    def test_defaults(self, monkeypatch):
        for name in ("PORT", "N8N_WEBHOOK_URL", "NODE_ENV", "WA_RELAY_RECONNECT_DELAY"):
            monkeypatch.delenv(name, raising=False)

        settings = get_settings()

        assert settings.port == 3000
        assert settings.n8n_webhook_url == ""
        assert settings.reconnect_delay == 5.0
        assert settings.error_retry_delay == 15.0
        assert settings.pairing_timeout == 60.0
        assert settings.startup_delay == 2.0
        assert settings.browser == ("WhatsApp Task Bot", "Chrome", "1.0.0")
        assert settings.auth_dir == "auth_info_baileys"
        assert settings.default_message == DEFAULT_MESSAGE
        assert settings.logout_on_shutdown is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("N8N_WEBHOOK_URL", "https://n8n.example.com/webhook/whatsapp-task")
        monkeypatch.setenv("NODE_ENV", "production")
        monkeypatch.setenv("WA_RELAY_RECONNECT_BACKOFF", "Exponential")
        monkeypatch.setenv("WA_RELAY_LOGOUT_ON_SHUTDOWN", "false")
        monkeypatch.setenv("WA_RELAY_BRIDGE_TOKEN", "s3cret")

        settings = get_settings()

        assert settings.port == 8080
        assert settings.n8n_webhook_url.endswith("/whatsapp-task")
        assert settings.is_production is True
        assert settings.log_level == "INFO"
        assert settings.reconnect_backoff == "exponential"
        assert settings.logout_on_shutdown is False
        assert settings.bridge_token.get_secret_value() == "s3cret"
        assert "s3cret" not in repr(settings)

    def test_development_logs_debug(self):
        assert AppSettings(environment="development").log_level == "DEBUG"

    def test_invalid_backoff_rejected(self, monkeypatch):
        monkeypatch.setenv("WA_RELAY_RECONNECT_BACKOFF", "fibonacci")

        with pytest.raises(pydantic.ValidationError):
            get_settings()

    def test_invalid_port_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            AppSettings(port=0)
