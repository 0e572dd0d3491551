"""Reference-data store contract and an in-memory implementation."""

from __future__ import annotations

from typing import Iterable, Protocol

from valuation_sync.models import ReferenceRecord, normalize_ticker


class ReferenceDataStore(Protocol):
    """Synchronous ticker -> reference metadata lookup.

    ``version`` must change whenever any record changes so derived valuations
    know to recompute.
    """

    @property
    def version(self) -> int:
        ...

    def get(self, ticker: str) -> ReferenceRecord | None:
        ...


class InMemoryReferenceStore:
    """Simple reference store for seed data, tests and examples."""

    def __init__(self, records: Iterable[ReferenceRecord] = ()) -> None:
        self._records: dict[str, ReferenceRecord] = {r.ticker: r for r in records}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def get(self, ticker: str) -> ReferenceRecord | None:
        return self._records.get(normalize_ticker(ticker))

    def __contains__(self, ticker: object) -> bool:
        return isinstance(ticker, str) and normalize_ticker(ticker) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def upsert(self, record: ReferenceRecord) -> None:
        self._records[record.ticker] = record
        self._version += 1

    def remove(self, ticker: str) -> ReferenceRecord | None:
        record = self._records.pop(normalize_ticker(ticker), None)
        if record is not None:
            self._version += 1
        return record


def resolve_records(store: ReferenceDataStore, tickers: Iterable[str]) -> dict[str, ReferenceRecord]:
    """Collect the records the store knows for ``tickers``; unknown tickers are skipped."""

    resolved: dict[str, ReferenceRecord] = {}
    for ticker in tickers:
        record = store.get(ticker)
        if record is not None:
            resolved[ticker] = record
    return resolved


__all__ = ["InMemoryReferenceStore", "ReferenceDataStore", "resolve_records"]
