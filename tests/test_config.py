from __future__ import annotations

import logging

from kraal.core import config as core_config
from kraal.core.log import configure_logging


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://example.org/")
    monkeypatch.setenv("SMTP_PORT", "not-a-number")
    monkeypatch.setenv("EMAIL_OUTBOX_MAX_ATTEMPTS", "0")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    core_config.get_settings.cache_clear()
    try:
        settings = core_config.get_settings()
        assert settings.app_env == "prod"
        assert settings.public_base_url == "https://example.org"
        assert settings.smtp_port == 465
        assert settings.email_outbox_max_attempts == 1
        assert settings.log_level == "DEBUG"
    finally:
        core_config.get_settings.cache_clear()


def test_configure_logging_accepts_unknown_levels(monkeypatch):
    calls = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))

    configure_logging("verbose")

    assert calls["level"] == logging.INFO
