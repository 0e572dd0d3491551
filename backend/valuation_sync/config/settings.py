"""Application configuration and environment helpers."""

from __future__ import annotations

from datetime import time
from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXCHANGE_TIMEZONE = "America/New_York"


class AppSettings(BaseSettings):
    """Configuration options for the valuation sync engine."""

    app_name: str = Field(default="Basket Valuation Sync")

    price_endpoint_url: str = Field(
        default="http://localhost:3000/api/prices",
        description="Price source endpoint keyed by a comma-joined ticker list.",
    )
    price_endpoint_token: str | None = Field(
        default=None,
        description="Optional bearer token sent to the price endpoint.",
    )
    price_request_timeout_seconds: float = Field(default=10.0, gt=0)

    poll_interval_open_seconds: float = Field(default=30.0, gt=0)
    poll_interval_closed_seconds: float = Field(default=300.0, gt=0)
    failure_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive failed polls before data is flagged unavailable.",
    )

    exchange_timezone: str = Field(default=DEFAULT_EXCHANGE_TIMEZONE)
    session_open: time = Field(default=time(9, 30))
    session_close: time = Field(default=time(16, 0))

    rate_limit_requests: int = Field(default=60, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)

    log_level: str = Field(default="INFO")

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="valuation-sync")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="VALUATION_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"price_endpoint_token"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_EXCHANGE_TIMEZONE",
    "get_settings",
]
