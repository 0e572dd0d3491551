"""Process wiring: settings, logging, telemetry and a shared price client."""

from __future__ import annotations

import logging

from valuation_sync.config import AppSettings, get_settings
from valuation_sync.core.logging import setup_logging
from valuation_sync.core.telemetry import setup_telemetry
from valuation_sync.providers.price_endpoint import PriceEndpointClient
from valuation_sync.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def configure_runtime(settings: AppSettings | None = None) -> AppSettings:
    """Install logging and telemetry for a host process. Call once at startup."""

    settings = settings or get_settings()
    setup_logging(settings.log_level)
    setup_telemetry(settings)
    logger.info("Valuation sync settings: %s", settings.dict_for_logging())
    return settings


def build_price_client(settings: AppSettings | None = None) -> PriceEndpointClient:
    """Return a price client with its own limiter.

    Share the returned client across basket views so they draw on one request
    budget against the endpoint.
    """

    settings = settings or get_settings()
    return PriceEndpointClient.from_settings(settings, rate_limiter=RateLimiter.from_settings(settings))


__all__ = ["build_price_client", "configure_runtime"]
