"""Join a basket's positions with reference data and live prices."""

from __future__ import annotations

from datetime import date
from typing import Callable

from valuation_sync.config import AppSettings
from valuation_sync.models import (
    BasketDefinition,
    BasketValuation,
    PriceSnapshot,
    SyncStatus,
    ValuationRow,
)
from valuation_sync.services.aggregator import simple_return, summarize
from valuation_sync.services.price_sync import PriceSyncController, QuoteFetcher
from valuation_sync.services.reference_store import ReferenceDataStore, resolve_records
from valuation_sync.services.session_clock import ytd_baseline_date
from valuation_sync.services.staleness import missing


def build_valuation(
    basket: BasketDefinition,
    reference: ReferenceDataStore,
    snapshot: PriceSnapshot | None,
    status: SyncStatus,
    baseline_date: date | None = None,
) -> BasketValuation:
    """Produce render rows and summary metrics. Performs no I/O.

    Until the first snapshot arrives no ticker is reported missing; the
    aggregates are zero and ``status.loading`` tells the caller why.
    """

    records = resolve_records(reference, basket.tickers)
    quotes = snapshot.quotes if snapshot is not None else {}
    absent = missing(basket.tickers, quotes) if snapshot is not None else frozenset()

    rows: list[ValuationRow] = []
    stale: set[str] = set()
    for position in basket.positions:
        record = records.get(position.ticker)
        quote = quotes.get(position.ticker)
        current = quote.price if quote is not None and quote.has_price else None
        # Present but unpriced (null, zero or negative)
        is_stale = quote is not None and current is None
        if is_stale:
            stale.add(position.ticker)
        baseline = record.baseline_price if record is not None else None
        rows.append(
            ValuationRow(
                ticker=position.ticker,
                name=record.name if record is not None else position.ticker,
                classification=record.classification if record is not None else "Unknown",
                weight=position.weight,
                baseline_price=baseline,
                current_price=current,
                return_percent=simple_return(current, baseline),
                day_change_percent=quote.change_percent if current is not None else None,
                market_cap=quote.market_cap if quote is not None else None,
                score=record.score if record is not None else None,
                is_stale=is_stale,
                is_missing=position.ticker in absent,
                is_live=current is not None and quote.is_live,
            )
        )

    return BasketValuation(
        basket_id=basket.id,
        rows=tuple(rows),
        summary=summarize(basket.positions, quotes, records),
        status=status,
        market_open=snapshot.market_open if snapshot is not None else False,
        as_of=snapshot.as_of if snapshot is not None else None,
        stale_tickers=frozenset(stale),
        missing_tickers=absent,
        baseline_date=baseline_date,
    )


class BasketValuationView:
    """One basket's live valuation. Owns exactly one price sync controller."""

    def __init__(
        self,
        reference: ReferenceDataStore,
        controller: PriceSyncController,
        *,
        baseline_date: date | None = None,
    ) -> None:
        self._reference = reference
        self._controller = controller
        self._baseline_date = baseline_date or ytd_baseline_date()
        self._basket: BasketDefinition | None = None
        self._memo_snapshot: PriceSnapshot | None = None
        self._memo_key: tuple[BasketDefinition, int, SyncStatus] | None = None
        self._memo: BasketValuation | None = None

    @classmethod
    def create(
        cls,
        reference: ReferenceDataStore,
        fetcher: QuoteFetcher,
        settings: AppSettings | None = None,
        **controller_kwargs,
    ) -> "BasketValuationView":
        controller = PriceSyncController.from_settings(fetcher, settings, **controller_kwargs)
        return cls(reference, controller)

    @property
    def basket(self) -> BasketDefinition | None:
        return self._basket

    @property
    def controller(self) -> PriceSyncController:
        return self._controller

    @property
    def baseline_date(self) -> date:
        return self._baseline_date

    def set_basket(self, basket: BasketDefinition | None) -> None:
        """Switch to ``basket``; its positions become the tracked ticker set."""

        self._basket = basket
        self._controller.configure(basket.tickers if basket is not None else ())

    def valuation(self) -> BasketValuation | None:
        if self._basket is None:
            return None
        snapshot = self._controller.snapshot()
        key = (self._basket, self._reference.version, self._controller.status())
        if self._memo is not None and self._memo_snapshot is snapshot and self._memo_key == key:
            return self._memo

        self._memo = build_valuation(
            self._basket,
            self._reference,
            snapshot,
            key[2],
            baseline_date=self._baseline_date,
        )
        self._memo_snapshot = snapshot
        self._memo_key = key
        return self._memo

    def refresh(self) -> None:
        self._controller.refresh(force=True)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._controller.subscribe(listener)

    def close(self) -> None:
        self._controller.dispose()
        self._memo = None
        self._memo_snapshot = None
        self._memo_key = None


__all__ = ["BasketValuationView", "build_valuation"]
