"""Live price synchronisation for one basket's ticker set.

A controller keeps one "current price view" for a caller-supplied ticker set.
At most one request is in flight at a time. Every request carries a ticket of
``(generation, sequence)``: the generation changes whenever the ticker set
changes, and the sequence is the issue order. A response is published only
when its generation is still current and its sequence is newer than the last
one published. This single check stops late or superseded responses from
overwriting newer data. The check does not depend on cancellation arriving
in time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Protocol, Sequence

from valuation_sync.config import AppSettings, get_settings
from valuation_sync.core.telemetry import get_meter, get_tracer
from valuation_sync.models import ErrorKind, PriceSnapshot, SyncStatus, dedupe_tickers
from valuation_sync.providers.price_endpoint import PriceEndpointError
from valuation_sync.schemas.prices import PriceResponseSchema
from valuation_sync.services.session_clock import MarketSessionClock
from valuation_sync.services.staleness import classify

logger = logging.getLogger(__name__)

_poll_counter = get_meter().create_counter(
    "price_sync.polls",
    description="Completed price polls by outcome",
)

Listener = Callable[[], None]


class QuoteFetcher(Protocol):
    async def fetch_quotes(self, tickers: Sequence[str]) -> PriceResponseSchema:
        ...


@dataclass(frozen=True)
class FetchTicket:
    generation: int
    sequence: int
    tickers: tuple[str, ...]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceSyncController:
    """Poll the price endpoint for a changing ticker set and publish snapshots."""

    def __init__(
        self,
        fetcher: QuoteFetcher,
        *,
        clock: MarketSessionClock | None = None,
        open_interval: float = 30.0,
        closed_interval: float = 300.0,
        timeout_seconds: float = 10.0,
        failure_threshold: int = 3,
        now: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._clock = clock or MarketSessionClock()
        self._open_interval = open_interval
        self._closed_interval = closed_interval
        self._timeout = timeout_seconds
        self._failure_threshold = failure_threshold
        self._now = now
        self._sleep = sleep

        self._tickers: tuple[str, ...] = ()
        self._generation = 0
        self._sequence = 0
        self._published_sequence = 0
        self._snapshot: PriceSnapshot | None = None

        self._inflight: asyncio.Task[None] | None = None
        self._fetch: asyncio.Task[PriceResponseSchema] | None = None
        self._poll_task: asyncio.Task[None] | None = None

        self._loading = False
        self._refreshing = False
        self._error: ErrorKind | None = None
        self._failures = 0
        self._last_fetch: datetime | None = None
        self._disposed = False
        self._listeners: list[Listener] = []

    @classmethod
    def from_settings(
        cls,
        fetcher: QuoteFetcher,
        settings: AppSettings | None = None,
        **kwargs,
    ) -> "PriceSyncController":
        settings = settings or get_settings()
        return cls(
            fetcher,
            clock=MarketSessionClock.from_settings(settings),
            open_interval=settings.poll_interval_open_seconds,
            closed_interval=settings.poll_interval_closed_seconds,
            timeout_seconds=settings.price_request_timeout_seconds,
            failure_threshold=settings.failure_threshold,
            **kwargs,
        )

    # Public API

    @property
    def tickers(self) -> tuple[str, ...]:
        return self._tickers

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def disposed(self) -> bool:
        return self._disposed

    def snapshot(self) -> PriceSnapshot | None:
        return self._snapshot

    def status(self) -> SyncStatus:
        return SyncStatus(
            loading=self._loading,
            refreshing=self._refreshing,
            error=self._error,
            consecutive_failures=self._failures,
            data_unavailable=self._failures >= self._failure_threshold,
            last_fetch=self._last_fetch,
        )

    def poll_interval(self, now: datetime | None = None) -> float:
        return self._clock.poll_interval(
            now or self._now(),
            open_seconds=self._open_interval,
            closed_seconds=self._closed_interval,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every publish or status change."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def configure(self, tickers: Iterable[str]) -> None:
        """Track ``tickers``; a changed set fetches at once and re-arms polling.

        Must be called from within a running event loop.
        """

        if self._disposed:
            logger.debug("Ignoring configure on disposed price sync controller")
            return

        normalized = dedupe_tickers(tickers)
        if set(normalized) == set(self._tickers):
            self._tickers = normalized
            return

        self._generation += 1
        self._cancel_inflight()
        self._tickers = normalized
        self._snapshot = None
        self._error = None
        self._failures = 0
        self._refreshing = False
        self._last_fetch = None

        if not normalized:
            self._cancel_poll()
            self._loading = False
            logger.debug("Price sync cleared (generation %d)", self._generation)
            self._notify()
            return

        logger.info(
            "Tracking %d tickers (generation %d): %s",
            len(normalized),
            self._generation,
            ",".join(normalized),
        )
        self._loading = True
        self._issue()
        self._arm_timer()
        self._notify()

    def refresh(self, force: bool = False) -> asyncio.Task[None] | None:
        """Fetch now, or join the fetch already in flight.

        ``force`` marks the status as a user-initiated refresh. Returns the task
        serving the request, or ``None`` when there is nothing to fetch.
        """

        if self._disposed or not self._tickers:
            return None
        if force and not self._refreshing:
            self._refreshing = True
            self._notify()
        if self._inflight is not None and not self._inflight.done():
            return self._inflight
        return self._issue()

    def dispose(self) -> None:
        """Abort outstanding work and make the controller inert. Idempotent."""

        if self._disposed:
            return
        self._disposed = True
        self._cancel_inflight()
        self._cancel_poll()
        self._listeners.clear()
        self._loading = False
        self._refreshing = False
        logger.debug("Price sync controller disposed at generation %d", self._generation)

    # Fetch pipeline

    def _issue(self) -> asyncio.Task[None]:
        self._sequence += 1
        ticket = FetchTicket(self._generation, self._sequence, self._tickers)
        task = asyncio.get_running_loop().create_task(
            self._run(ticket),
            name=f"price-sync-g{ticket.generation}-s{ticket.sequence}",
        )
        self._inflight = task
        return task

    async def _run(self, ticket: FetchTicket) -> None:
        # Aborts cancel only ``fetch``; this task always finishes normally.
        if not self._is_current(ticket):
            return
        fetch = asyncio.get_running_loop().create_task(
            self._fetcher.fetch_quotes(ticket.tickers),
            name=f"price-fetch-g{ticket.generation}-s{ticket.sequence}",
        )
        self._fetch = fetch

        tracer = get_tracer()
        with tracer.start_as_current_span("price_sync.fetch") as span:
            span.set_attribute("price_sync.generation", ticket.generation)
            span.set_attribute("price_sync.sequence", ticket.sequence)
            span.set_attribute("price_sync.ticker_count", len(ticket.tickers))
            try:
                done, _ = await asyncio.wait({fetch}, timeout=self._timeout)
                if fetch not in done:
                    fetch.cancel()
                    span.set_attribute("price_sync.outcome", ErrorKind.TIMEOUT.value)
                    self._fail(ticket, ErrorKind.TIMEOUT, f"no response within {self._timeout:g}s")
                    return
                response = fetch.result()
            except asyncio.CancelledError:
                # Superseded or disposed; not a failure
                fetch.cancel()
                span.set_attribute("price_sync.outcome", "aborted")
                return
            except asyncio.TimeoutError:
                span.set_attribute("price_sync.outcome", ErrorKind.TIMEOUT.value)
                self._fail(ticket, ErrorKind.TIMEOUT, "fetcher timed out")
                return
            except PriceEndpointError as exc:
                span.set_attribute("price_sync.outcome", exc.kind.value)
                self._fail(ticket, exc.kind, str(exc))
                return
            except Exception as exc:  # noqa: BLE001 - nothing escapes the poll loop
                logger.exception("Unexpected error while fetching prices")
                span.set_attribute("price_sync.outcome", ErrorKind.MALFORMED.value)
                self._fail(ticket, ErrorKind.MALFORMED, repr(exc))
                return
            finally:
                if self._fetch is fetch:
                    self._fetch = None
                    self._inflight = None

            published = self._complete(ticket, response)
            span.set_attribute("price_sync.outcome", "published" if published else "superseded")

    def _is_current(self, ticket: FetchTicket) -> bool:
        return not self._disposed and ticket.generation == self._generation

    def _complete(self, ticket: FetchTicket, response: PriceResponseSchema) -> bool:
        """Publish ``response`` if ``ticket`` is still the newest for the current set."""

        if not self._is_current(ticket) or ticket.sequence <= self._published_sequence:
            logger.debug(
                "Dropping superseded price response g%d/s%d (current g%d, published s%d)",
                ticket.generation,
                ticket.sequence,
                self._generation,
                self._published_sequence,
            )
            return False

        requested = set(ticket.tickers)
        quotes = {t: q for t, q in response.quotes().items() if t in requested}
        snapshot = PriceSnapshot(
            quotes=quotes,
            market_open=response.market_open,
            as_of=response.as_of(self._now()),
            stale_tickers=classify(quotes),
            requested=ticket.tickers,
            generation=ticket.generation,
            sequence=ticket.sequence,
        )
        self._snapshot = snapshot
        self._published_sequence = ticket.sequence
        self._error = None
        self._failures = 0
        self._loading = False
        self._refreshing = False
        self._last_fetch = snapshot.as_of
        _poll_counter.add(1, {"outcome": "published"})

        absent = snapshot.missing_tickers
        if snapshot.stale_tickers or absent:
            logger.info(
                "Prices published with %d stale and %d missing tickers",
                len(snapshot.stale_tickers),
                len(absent),
            )
        self._notify()
        return True

    def _fail(self, ticket: FetchTicket, kind: ErrorKind, detail: str) -> None:
        if not self._is_current(ticket):
            return
        self._failures += 1
        self._error = kind
        self._loading = False
        self._refreshing = False
        _poll_counter.add(1, {"outcome": kind.value})
        logger.warning(
            "Price poll failed (%s, %d consecutive): %s",
            kind.value,
            self._failures,
            detail,
        )
        if self._failures == self._failure_threshold:
            logger.warning("Price data unavailable after %d consecutive failures", self._failures)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001 - a broken listener must not stop polling
                logger.exception("Price sync listener failed")

    # Timer

    def _arm_timer(self) -> None:
        self._cancel_poll()
        self._poll_task = asyncio.get_running_loop().create_task(
            self._poll_loop(),
            name=f"price-sync-poll-g{self._generation}",
        )

    async def _poll_loop(self) -> None:
        was_open = self._clock.is_open(self._now())
        while not self._disposed:
            now = self._now()
            until_flip = (self._clock.next_transition(now) - now).total_seconds()
            await self._sleep(max(min(self.poll_interval(now), until_flip), 0.0))

            is_open = self._clock.is_open(self._now())
            if is_open != was_open:
                was_open = is_open
                logger.info(
                    "Market session %s; polling every %gs",
                    "opened" if is_open else "closed",
                    self.poll_interval(),
                )
            self.refresh()

    def _cancel_inflight(self) -> None:
        if self._fetch is not None and not self._fetch.done():
            self._fetch.cancel()
        self._fetch = None
        self._inflight = None

    def _cancel_poll(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None


__all__ = ["FetchTicket", "PriceSyncController", "QuoteFetcher"]
