"""Tests for environment-driven settings."""

import pytest

from mariflow.config import DEFAULT_API_KEY, DEFAULT_MAX_FILE_SIZE, load_settings

_VARS = (
    "API_KEY",
    "WHATSAPP_BACKEND",
    "WHATSAPP_SESSION_ID",
    "WHATSAPP_BRIDGE_URL",
    "WHATSAPP_BRIDGE_TIMEOUT",
    "WHATSAPP_AUTO_INITIALIZE",
    "WHATSAPP_RESTART_DELAY",
    "EVENTS_HEARTBEAT_INTERVAL",
    "MAX_FILE_SIZE",
    "PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()
        assert settings.api_key == DEFAULT_API_KEY
        assert settings.backend == "inline"
        assert settings.port == 3000
        assert settings.restart_delay == 2.0
        assert settings.heartbeat_interval == 30.0
        assert settings.max_file_size == DEFAULT_MAX_FILE_SIZE
        assert settings.auto_initialize is True

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("API_KEY", "k")
        monkeypatch.setenv("WHATSAPP_BACKEND", "Bridge")
        monkeypatch.setenv("WHATSAPP_BRIDGE_URL", "http://wwebjs:3000")
        monkeypatch.setenv("WHATSAPP_AUTO_INITIALIZE", "false")
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = load_settings()
        assert settings.api_key == "k"
        assert settings.backend == "bridge"
        assert settings.bridge_url == "http://wwebjs:3000"
        assert settings.auto_initialize is False
        assert settings.port == 8080
        assert settings.log_level == "DEBUG"

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("WHATSAPP_BACKEND", "puppeteer")
        with pytest.raises(ValueError, match="WHATSAPP_BACKEND"):
            load_settings()

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("WHATSAPP_RESTART_DELAY", "soon")
        with pytest.raises(ValueError, match="WHATSAPP_RESTART_DELAY"):
            load_settings()

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("MAX_FILE_SIZE", "10MB")
        with pytest.raises(ValueError, match="MAX_FILE_SIZE"):
            load_settings()
