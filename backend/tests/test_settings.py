from datetime import time

from valuation_sync.config import AppSettings


def test_defaults_match_polling_contract():
    settings = AppSettings()
    assert settings.poll_interval_open_seconds == 30.0
    assert settings.poll_interval_closed_seconds == 300.0
    assert settings.price_request_timeout_seconds == 10.0
    assert settings.exchange_timezone == "America/New_York"
    assert settings.session_open == time(9, 30)
    assert settings.session_close == time(16, 0)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("VALUATION_SYNC_POLL_INTERVAL_OPEN_SECONDS", "15")
    monkeypatch.setenv("VALUATION_SYNC_SESSION_OPEN", "08:00")
    monkeypatch.setenv("VALUATION_SYNC_FAILURE_THRESHOLD", "5")
    settings = AppSettings()
    assert settings.poll_interval_open_seconds == 15.0
    assert settings.session_open == time(8, 0)
    assert settings.failure_threshold == 5


def test_dict_for_logging_masks_token():
    settings = AppSettings(price_endpoint_token="abc123")
    logged = settings.dict_for_logging()
    assert logged["price_endpoint_token"] == "***"
    assert logged["price_endpoint_url"] == settings.price_endpoint_url
