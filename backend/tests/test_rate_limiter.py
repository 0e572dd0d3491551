import asyncio
import time

import pytest

from valuation_sync.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_window_blocks_then_frees_slots():
    clock = FakeClock()
    limiter = RateLimiter(2, 60, clock=clock)
    assert limiter.try_acquire()
    clock.now += 10
    assert limiter.try_acquire()
    assert not limiter.try_acquire()
    assert limiter.remaining() == 0
    assert limiter.retry_after() == pytest.approx(50.0)

    clock.now += 50
    assert limiter.remaining() == 1
    assert limiter.try_acquire()


def test_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        RateLimiter(0, 60)
    with pytest.raises(ValueError):
        RateLimiter(1, 0)


@pytest.mark.asyncio
async def test_acquire_waits_for_a_free_slot():
    limiter = RateLimiter(1, 0.05)
    await limiter.acquire()
    started = time.monotonic()
    await asyncio.wait_for(limiter.acquire(), timeout=1.0)
    assert time.monotonic() - started >= 0.03
