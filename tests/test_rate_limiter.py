"""Tests for market_calendar.rate_limiter: sliding-window throttling."""

import asyncio
import time

import pytest

from market_calendar.config import Config
from market_calendar.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)


def _limiter(clock: FakeClock, max_requests=2, time_window=1.0, safety_margin=0.1) -> RateLimiter:
    return RateLimiter(
        max_requests=max_requests,
        time_window=time_window,
        safety_margin=safety_margin,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.mark.asyncio
async def test_third_call_waits_for_window():
    """max 2 per 1s: the third immediate call resolves no earlier than ~1s after the first."""
    limiter = RateLimiter(max_requests=2, time_window=1.0, safety_margin=0.1)

    start = time.monotonic()
    await limiter.wait_if_needed()
    await limiter.wait_if_needed()
    await limiter.wait_if_needed()
    elapsed = time.monotonic() - start

    assert elapsed >= 0.95
    assert limiter.metrics_data.requests_limited == 1


@pytest.mark.asyncio
async def test_wait_time_formula():
    clock = FakeClock(10.0)
    limiter = _limiter(clock)

    assert await limiter.wait_if_needed() == 0.0
    clock.now = 10.3
    assert await limiter.wait_if_needed() == 0.0
    clock.now = 10.5

    waited = await limiter.wait_if_needed()

    # window - (now - oldest) + margin = 1.0 - 0.5 + 0.1
    assert waited == pytest.approx(0.6)
    assert clock.sleeps == [pytest.approx(0.6)]


@pytest.mark.asyncio
async def test_expired_timestamps_are_discarded():
    clock = FakeClock()
    limiter = _limiter(clock)

    await limiter.wait_if_needed()
    await limiter.wait_if_needed()
    clock.now = 1.0

    assert await limiter.wait_if_needed() == 0.0
    assert clock.sleeps == []
    assert limiter.pending == 1


@pytest.mark.asyncio
async def test_concurrent_callers_get_staggered_slots():
    clock = FakeClock()
    limiter = _limiter(clock)

    waits = await asyncio.gather(*(limiter.wait_if_needed() for _ in range(5)))

    assert waits[:2] == [0.0, 0.0]
    assert waits[2] == pytest.approx(1.1)
    assert waits[3] == pytest.approx(1.1)
    assert waits[4] == pytest.approx(2.2)


@pytest.mark.asyncio
async def test_independent_instances_do_not_share_state():
    clock = FakeClock()
    first = _limiter(clock, max_requests=1)
    second = _limiter(clock, max_requests=1)

    await first.wait_if_needed()

    assert await second.wait_if_needed() == 0.0


def test_rejects_invalid_parameters():
    with pytest.raises(ValueError, match="max_requests"):
        RateLimiter(max_requests=0)
    with pytest.raises(ValueError, match="time_window"):
        RateLimiter(time_window=0)


def test_from_config_defaults():
    limiter = RateLimiter.from_config(Config())
    assert limiter.max_requests == 1200
    assert limiter.time_window == 60.0
    assert limiter.safety_margin == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_metrics_report_waits():
    clock = FakeClock()
    limiter = _limiter(clock, max_requests=1)

    await limiter.wait_if_needed()
    await limiter.wait_if_needed()
    metrics = limiter.get_metrics()

    assert metrics["requests_made"] == 2
    assert metrics["requests_limited"] == 1
    assert metrics["max_wait_time"] == pytest.approx(1.1)
    assert limiter.metrics.get_counter("rate_limit_waits") == 1


@pytest.mark.asyncio
async def test_window_gauge_tracks_pending_requests():
    clock = FakeClock()
    limiter = _limiter(clock, max_requests=5)

    await limiter.wait_if_needed()
    await limiter.wait_if_needed()

    assert limiter.metrics.get_gauge("rate_limit_in_window") == 2
