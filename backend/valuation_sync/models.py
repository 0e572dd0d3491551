"""Domain types shared by the sync controller, aggregator and valuation view."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping


def normalize_ticker(raw: str) -> str:
    return raw.strip().upper()


@dataclass(frozen=True)
class Position:
    ticker: str
    weight: float

    def __post_init__(self) -> None:
        ticker = normalize_ticker(self.ticker)
        if not ticker:
            raise ValueError("Position ticker must not be blank")
        if self.weight < 0:
            raise ValueError(f"Position weight must not be negative: {self.ticker}={self.weight}")
        object.__setattr__(self, "ticker", ticker)
        object.__setattr__(self, "weight", float(self.weight))


@dataclass(frozen=True)
class BasketDefinition:
    """A named, ordered collection of weighted positions."""

    id: str
    positions: tuple[Position, ...] = ()
    name: str | None = None

    def __post_init__(self) -> None:
        positions = tuple(self.positions)
        seen: set[str] = set()
        for position in positions:
            if position.ticker in seen:
                raise ValueError(f"Duplicate ticker {position.ticker} in basket {self.id}")
            seen.add(position.ticker)
        object.__setattr__(self, "positions", positions)

    @property
    def tickers(self) -> tuple[str, ...]:
        return tuple(p.ticker for p in self.positions)


@dataclass(frozen=True)
class ReferenceRecord:
    """Static per-ticker metadata owned by the reference-data store."""

    ticker: str
    name: str
    baseline_price: float | None = None
    score: float | None = None
    asset_class: str | None = None
    sector: str | None = None
    industry: str | None = None
    baseline_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ticker", normalize_ticker(self.ticker))

    @property
    def classification(self) -> str:
        parts = [p for p in (self.asset_class, self.sector, self.industry) if p]
        return " / ".join(parts) if parts else "Unknown"


@dataclass(frozen=True)
class PriceQuote:
    price: float | None
    change: float = 0.0
    change_percent: float = 0.0
    market_cap: float | None = None
    is_live: bool = False
    source: str | None = None

    @property
    def has_price(self) -> bool:
        return self.price is not None and self.price > 0


@dataclass(frozen=True)
class PriceSnapshot:
    """Result of one successful poll. Replaced wholesale, never mutated."""

    quotes: Mapping[str, PriceQuote]
    market_open: bool
    as_of: datetime
    stale_tickers: frozenset[str]
    requested: tuple[str, ...] = ()
    generation: int = 0
    sequence: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "quotes", MappingProxyType(dict(self.quotes)))
        object.__setattr__(self, "stale_tickers", frozenset(self.stale_tickers))
        object.__setattr__(self, "requested", tuple(self.requested))

    @property
    def missing_tickers(self) -> frozenset[str]:
        return frozenset(t for t in self.requested if t not in self.quotes)

    def quote(self, ticker: str) -> PriceQuote | None:
        return self.quotes.get(ticker)


class ErrorKind(str, Enum):
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    HTTP_STATUS = "HTTP_STATUS"
    MALFORMED = "MALFORMED"


@dataclass(frozen=True)
class SyncStatus:
    loading: bool = False
    refreshing: bool = False
    error: ErrorKind | None = None
    consecutive_failures: int = 0
    data_unavailable: bool = False
    last_fetch: datetime | None = None


@dataclass(frozen=True)
class ValuationRow:
    ticker: str
    name: str
    classification: str
    weight: float
    baseline_price: float | None
    current_price: float | None
    return_percent: float | None
    day_change_percent: float | None
    market_cap: float | None
    score: float | None
    is_stale: bool
    is_missing: bool
    is_live: bool


@dataclass(frozen=True)
class BasketSummary:
    weighted_return: float = 0.0
    weighted_day_change: float = 0.0
    avg_score: float = 0.0
    total_weight: float = 0.0

    @property
    def weight_delta(self) -> float:
        """Distance from a fully allocated basket; shown as a warning, not enforced."""

        return 100.0 - self.total_weight


@dataclass(frozen=True)
class BasketValuation:
    basket_id: str
    rows: tuple[ValuationRow, ...]
    summary: BasketSummary
    status: SyncStatus
    market_open: bool = False
    as_of: datetime | None = None
    stale_tickers: frozenset[str] = field(default_factory=frozenset)
    missing_tickers: frozenset[str] = field(default_factory=frozenset)
    baseline_date: date | None = None

    @property
    def is_computed(self) -> bool:
        """False while zero aggregates only mean "no prices yet"."""

        return self.as_of is not None


def dedupe_tickers(tickers: Iterable[str]) -> tuple[str, ...]:
    """Normalise and de-duplicate tickers, keeping first-seen order."""

    seen: dict[str, None] = {}
    for raw in tickers:
        ticker = normalize_ticker(raw)
        if ticker:
            seen.setdefault(ticker, None)
    return tuple(seen)


__all__ = [
    "BasketDefinition",
    "BasketSummary",
    "BasketValuation",
    "ErrorKind",
    "Position",
    "PriceQuote",
    "PriceSnapshot",
    "ReferenceRecord",
    "SyncStatus",
    "ValuationRow",
    "dedupe_tickers",
    "normalize_ticker",
]
