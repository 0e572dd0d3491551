"""Weighted basket metrics.

All functions are pure and return raw floats; rounding and sign prefixes are
left to the renderer. Positions without usable data are dropped from both the
numerator and the denominator rather than being counted as a zero return.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from valuation_sync.models import BasketSummary, Position, PriceQuote, ReferenceRecord


def simple_return(current: float | None, baseline: float | None) -> float | None:
    """Percentage return from ``baseline`` to ``current``, ``None`` if either is unusable."""

    if current is None or baseline is None or current <= 0 or baseline <= 0:
        return None
    return (current / baseline - 1.0) * 100.0


def _weighted_mean(pairs: Iterable[tuple[float, float]]) -> float:
    numerator = 0.0
    denominator = 0.0
    for value, weight in pairs:
        numerator += value * weight
        denominator += weight
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def weighted_return(
    positions: Sequence[Position],
    quotes: Mapping[str, PriceQuote],
    reference: Mapping[str, ReferenceRecord],
) -> float:
    def eligible() -> Iterable[tuple[float, float]]:
        for position in positions:
            record = reference.get(position.ticker)
            quote = quotes.get(position.ticker)
            if record is None or quote is None:
                continue
            value = simple_return(quote.price, record.baseline_price)
            if value is not None:
                yield value, position.weight

    return _weighted_mean(eligible())


def weighted_day_change(
    positions: Sequence[Position],
    quotes: Mapping[str, PriceQuote],
) -> float:
    return _weighted_mean(
        (quotes[p.ticker].change_percent, p.weight)
        for p in positions
        if p.ticker in quotes and quotes[p.ticker].has_price
    )


def avg_score(
    positions: Sequence[Position],
    reference: Mapping[str, ReferenceRecord],
) -> float:
    scores = [
        reference[p.ticker].score
        for p in positions
        if p.ticker in reference and reference[p.ticker].score is not None
    ]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def total_weight(positions: Sequence[Position]) -> float:
    return sum(p.weight for p in positions)


def summarize(
    positions: Sequence[Position],
    quotes: Mapping[str, PriceQuote],
    reference: Mapping[str, ReferenceRecord],
) -> BasketSummary:
    return BasketSummary(
        weighted_return=weighted_return(positions, quotes, reference),
        weighted_day_change=weighted_day_change(positions, quotes),
        avg_score=avg_score(positions, reference),
        total_weight=total_weight(positions),
    )


__all__ = [
    "avg_score",
    "simple_return",
    "summarize",
    "total_weight",
    "weighted_day_change",
    "weighted_return",
]
