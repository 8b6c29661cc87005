"""
Tests for rate_limiter.py — FixedDelayLimiter.

Covers:
  - First call never waits
  - Back-to-back calls wait out the remaining interval
  - Calls spaced further apart than the interval don't wait
  - Concurrent callers are serialised
  - Real clock: N calls take at least (N-1) × interval
  - One limiter contended under successive event loops
"""
from __future__ import annotations

import asyncio
import time

import pytest

from rate_limiter import FixedDelayLimiter


class FakeClock:
    """Monotonic clock that only advances when sleep() is awaited or advance() is called."""

    def __init__(self):
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs

    async def sleep(self, secs: float) -> None:
        self.sleeps.append(secs)
        self.now += secs


def make_limiter(interval: float = 1.0):
    clock = FakeClock()
    return FixedDelayLimiter(interval, clock=clock, sleep=clock.sleep), clock


@pytest.mark.asyncio
class TestFixedDelayLimiter:
    async def test_first_call_does_not_wait(self):
        limiter, clock = make_limiter()
        await limiter.acquire()
        assert clock.sleeps == []

    async def test_second_call_waits_full_interval(self):
        limiter, clock = make_limiter()
        await limiter.acquire()
        await limiter.acquire()
        assert clock.sleeps == [pytest.approx(1.0)]

    async def test_waits_only_remaining_time(self):
        limiter, clock = make_limiter()
        await limiter.acquire()
        clock.advance(0.4)
        await limiter.acquire()
        assert clock.sleeps == [pytest.approx(0.6)]

    async def test_no_wait_after_interval_elapsed(self):
        limiter, clock = make_limiter()
        await limiter.acquire()
        clock.advance(1.5)
        await limiter.acquire()
        assert clock.sleeps == []

    async def test_n_calls_span_n_minus_one_intervals(self):
        limiter, clock = make_limiter()
        start = clock.now
        for _ in range(5):
            await limiter.acquire()
        assert clock.now - start >= 4.0

    async def test_concurrent_callers_are_serialised(self):
        limiter, clock = make_limiter()
        start = clock.now
        await asyncio.gather(*(limiter.acquire() for _ in range(4)))
        assert len(clock.sleeps) == 3
        assert clock.now - start >= 3.0

    async def test_real_clock_spacing(self):
        limiter = FixedDelayLimiter(0.05)
        t0 = time.monotonic()
        for _ in range(4):
            await limiter.acquire()
        assert time.monotonic() - t0 >= 0.15 - 0.005


class TestAcrossEventLoops:
    def test_contended_under_successive_loops(self):
        limiter = FixedDelayLimiter(0.01)

        async def burst():
            await asyncio.gather(*(limiter.acquire() for _ in range(3)))

        t0 = time.monotonic()
        asyncio.run(burst())
        asyncio.run(burst())
        assert time.monotonic() - t0 >= 0.05 - 0.005
