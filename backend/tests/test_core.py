import logging

from valuation_sync.config import AppSettings
from valuation_sync.core.logging import setup_logging
from valuation_sync.core.telemetry import get_tracer, setup_telemetry


def test_setup_logging_quiets_http_stack():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        setup_logging("DEBUG")
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert len(root.handlers) == len(handlers) + 1
    finally:
        for handler in root.handlers[len(handlers):]:
            root.removeHandler(handler)
        root.setLevel(level)


def test_telemetry_disabled_by_default():
    assert setup_telemetry(AppSettings(telemetry_enabled=False)) is False
    # API-level tracer works without an SDK provider
    with get_tracer().start_as_current_span("noop") as span:
        span.set_attribute("ok", True)


def test_configure_runtime_installs_logging():
    from valuation_sync.runtime import build_price_client, configure_runtime

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    settings = AppSettings(log_level="WARNING", price_endpoint_token="secret", rate_limit_requests=5)
    try:
        assert configure_runtime(settings) is settings
        assert root.level == logging.WARNING
    finally:
        for handler in root.handlers[len(handlers):]:
            root.removeHandler(handler)
        root.setLevel(level)

    client = build_price_client(settings)
    assert client._rate_limiter is not None
    assert client._rate_limiter.max_requests == 5
