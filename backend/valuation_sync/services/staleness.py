"""Stale/missing classification of a price response."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from valuation_sync.models import PriceQuote


@dataclass(frozen=True)
class QuoteClassification:
    live: frozenset[str]
    delayed: frozenset[str]
    stale: frozenset[str]
    missing: frozenset[str]


def classify(quotes: Mapping[str, PriceQuote]) -> frozenset[str]:
    """Tickers present in ``quotes`` whose price is unavailable."""

    return frozenset(ticker for ticker, quote in quotes.items() if quote.price is None)


def missing(requested: Iterable[str], quotes: Mapping[str, PriceQuote]) -> frozenset[str]:
    return frozenset(ticker for ticker in requested if ticker not in quotes)


def partition(requested: Iterable[str], quotes: Mapping[str, PriceQuote]) -> QuoteClassification:
    """Split the requested tickers into live, delayed, stale and missing.

    Tickers returned but never requested are ignored. A quote with a price of
    zero or below counts as stale alongside ``None``.
    """

    live: set[str] = set()
    delayed: set[str] = set()
    stale: set[str] = set()
    absent: set[str] = set()
    for ticker in requested:
        quote = quotes.get(ticker)
        if quote is None:
            absent.add(ticker)
        elif not quote.has_price:
            stale.add(ticker)
        elif quote.is_live:
            live.add(ticker)
        else:
            delayed.add(ticker)
    return QuoteClassification(
        live=frozenset(live),
        delayed=frozenset(delayed),
        stale=frozenset(stale),
        missing=frozenset(absent),
    )


__all__ = ["QuoteClassification", "classify", "missing", "partition"]
