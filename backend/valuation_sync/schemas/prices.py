"""Pydantic schemas for the price endpoint payload."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from valuation_sync.models import PriceQuote, normalize_ticker


class PriceQuoteSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    price: float | None = None
    change: float = 0.0
    change_percent: float = Field(default=0.0, alias="changePercent")
    market_cap: float | None = Field(default=None, alias="marketCap")
    is_live: bool = Field(default=False, alias="isLive")

    @field_validator("change", "change_percent", mode="before")
    @classmethod
    def _null_change_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    def to_domain(self, source: str | None = None) -> PriceQuote:
        return PriceQuote(
            price=self.price,
            change=self.change,
            change_percent=self.change_percent,
            market_cap=self.market_cap,
            is_live=self.is_live,
            source=source,
        )


class PriceResponseSchema(BaseModel):
    """``{prices: {T: quote}, marketOpen, timestamp}`` as served by the price endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prices: dict[str, PriceQuoteSchema]
    market_open: bool = Field(default=False, alias="marketOpen")
    timestamp: datetime | None = None
    sources: dict[str, str] = Field(default_factory=dict)

    @field_validator("prices", mode="before")
    @classmethod
    def _coerce_bare_prices(cls, value: Any) -> Any:
        # Some deployments send ``{T: 123.4 | null}`` instead of full quote objects
        if not isinstance(value, dict):
            return value
        coerced: dict[str, Any] = {}
        for ticker, item in value.items():
            if item is None or (isinstance(item, (int, float)) and not isinstance(item, bool)):
                item = {"price": item}
            coerced[normalize_ticker(str(ticker))] = item
        return coerced

    @field_validator("sources", mode="before")
    @classmethod
    def _normalize_sources(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {normalize_ticker(str(k)): v for k, v in value.items() if v is not None}
        return value

    def as_of(self, fallback: datetime | None = None) -> datetime:
        if self.timestamp is None:
            return fallback or datetime.now(timezone.utc)
        if self.timestamp.tzinfo is None:
            return self.timestamp.replace(tzinfo=timezone.utc)
        return self.timestamp

    def quotes(self) -> dict[str, PriceQuote]:
        return {
            ticker: schema.to_domain(source=self.sources.get(ticker))
            for ticker, schema in self.prices.items()
        }


__all__ = ["PriceQuoteSchema", "PriceResponseSchema"]
