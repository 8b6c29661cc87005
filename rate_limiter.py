"""
Rate limiting for outbound catalog searches.

The external catalog has an undocumented request limit, so successive calls
are spaced by a fixed minimum delay. Callers only depend on `RateLimiter`,
so a token bucket can replace `FixedDelayLimiter` without touching them.
"""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter(ABC):

    @abstractmethod
    async def acquire(self) -> None:
        """Return once the caller may issue its next request."""
        ...


class FixedDelayLimiter(RateLimiter):
    """
    Guarantees at least `min_interval` seconds between the start of two
    successive requests. Concurrent callers are serialised by a lock, so N
    calls always take at least (N-1) × min_interval seconds.

    One instance may be shared by several event loops in turn (each
    asyncio.run() in a CLI or test session); the lock is created per loop.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def _loop_lock(self) -> asyncio.Lock:
        # asyncio.Lock binds to the first loop that waits on it
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def acquire(self) -> None:
        async with self._loop_lock():
            if self._last_call is not None:
                wait = self.min_interval - (self._clock() - self._last_call)
                if wait > 0:
                    logger.debug("Rate limit: waiting %.3fs", wait)
                    await self._sleep(wait)
            self._last_call = self._clock()
