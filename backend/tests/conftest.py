import asyncio
import inspect
import pathlib
import sys
from datetime import datetime
from typing import Any, Sequence
from zoneinfo import ZoneInfo

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from valuation_sync.schemas.prices import PriceResponseSchema  # noqa: E402

NEW_YORK = ZoneInfo("America/New_York")


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


def _cancel_pending(loop: asyncio.AbstractEventLoop) -> None:
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    loop.run_until_complete(loop.shutdown_asyncgens())


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            testargs = {arg: pyfuncitem.funcargs[arg] for arg in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**testargs))
        finally:
            _cancel_pending(loop)
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


def price_payload(prices: dict[str, Any], market_open: bool = True) -> dict[str, Any]:
    return {"prices": prices, "marketOpen": market_open, "timestamp": "2026-03-10T14:00:00Z"}


def quote(price: float | None, change_percent: float = 0.0, is_live: bool = True) -> dict[str, Any]:
    return {"price": price, "change": 0.0, "changePercent": change_percent, "marketCap": None, "isLive": is_live}


class ScriptedFetcher:
    """Price fetcher whose responses are released by the test."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.pending: list[asyncio.Future] = []

    async def fetch_quotes(self, tickers: Sequence[str]) -> PriceResponseSchema:
        self.calls.append(tuple(tickers))
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future

    def resolve(self, index: int, payload: dict[str, Any]) -> bool:
        future = self.pending[index]
        if future.done():
            return False
        future.set_result(PriceResponseSchema.model_validate(payload))
        return True

    def fail(self, index: int, exc: BaseException) -> bool:
        future = self.pending[index]
        if future.done():
            return False
        future.set_exception(exc)
        return True


class GatedSleep:
    """Stand-in for ``asyncio.sleep`` that records delays and waits for ``release``."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._gate: asyncio.Queue[None] = asyncio.Queue()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await self._gate.get()

    def release(self) -> None:
        self._gate.put_nowait(None)


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run until they block again."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    return ScriptedFetcher()


@pytest.fixture
def gated_sleep() -> GatedSleep:
    return GatedSleep()


@pytest.fixture
def tuesday_open() -> datetime:
    return datetime(2026, 3, 10, 10, 0, tzinfo=NEW_YORK)
