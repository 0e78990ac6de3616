from __future__ import annotations

import logging

from keypool.core.config.startup_log import _redact_setting_value, log_startup_config


def test_redact_setting_value_masks_credentials() -> None:
    assert _redact_setting_value("api_keys", ["AIzaSyExampleKey1234"]) == ["AIza****1234"]
    assert _redact_setting_value("access_tokens", ["tok"]) == ["****"]


def test_redact_setting_value_masks_database_url() -> None:
    assert _redact_setting_value("database_url", "postgresql+asyncpg://u:p@db/keypool") == "***"


def test_redact_setting_value_leaves_plain_values() -> None:
    assert _redact_setting_value("ordering", "shuffle") == "shuffle"


def test_log_startup_config_is_silent_by_default(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="keypool"):
        log_startup_config()
    assert "Startup settings snapshot" not in caplog.text


def test_log_startup_config_never_prints_raw_keys(monkeypatch, caplog) -> None:
    from keypool.core.config.settings import get_settings

    monkeypatch.setenv("KEYPOOL_STARTUP_LOG_CONFIG", "true")
    get_settings.cache_clear()

    with caplog.at_level(logging.INFO, logger="keypool"):
        log_startup_config()

    assert "Startup settings snapshot" in caplog.text
    assert "AIzaTestKeyAlpha000001" not in caplog.text
    assert "client-access-token" not in caplog.text
