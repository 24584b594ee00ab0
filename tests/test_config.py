from __future__ import annotations

import logging

from winterdienst.config import Settings


def test_defaults_without_environment():
    settings = Settings.from_env({})
    assert settings == Settings()
    assert settings.enable_bg_filter is False
    assert settings.fetch_timeout == 3.0
    assert settings.fetch_attempts == 2


def test_values_are_read_from_prefixed_variables():
    settings = Settings.from_env(
        {
            "WINTERDIENST_ENABLE_BG_FILTER": "true",
            "WINTERDIENST_COMPANY_NAME": " Muster GmbH ",
            "WINTERDIENST_LOG_LEVEL": "debug",
            "WINTERDIENST_FETCH_TIMEOUT": "1,5",
            "WINTERDIENST_FETCH_ATTEMPTS": "4",
            "WINTERDIENST_DATABASE_URL": "sqlite:///tmp/test.db",
        }
    )
    assert settings.enable_bg_filter is True
    assert settings.company_name == "Muster GmbH"
    assert settings.log_level == "DEBUG"
    assert settings.fetch_timeout == 1.5
    assert settings.fetch_attempts == 4
    assert settings.database_url == "sqlite:///tmp/test.db"


def test_invalid_values_fall_back_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="winterdienst.config"):
        settings = Settings.from_env(
            {
                "WINTERDIENST_ENABLE_BG_FILTER": "vielleicht",
                "WINTERDIENST_FETCH_BACKOFF": "schnell",
                "WINTERDIENST_FETCH_ATTEMPTS": "0",
            }
        )
    assert settings.enable_bg_filter is False
    assert settings.fetch_backoff == 0.2
    assert settings.fetch_attempts == 1
    assert "WINTERDIENST_ENABLE_BG_FILTER" in caplog.text
    assert "WINTERDIENST_FETCH_BACKOFF" in caplog.text
