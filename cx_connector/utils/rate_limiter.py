# /cx_connector/utils/rate_limiter.py

import asyncio
import time
import logging
from typing import Any, Callable

from cx_connector.utils.metrics import rate_limiter_waits_counter

# Throttles calls to the Dialogflow CX API: a token bucket bounds the call
# rate (`rate` calls per `interval` seconds) and a semaphore bounds the
# number of calls in flight. One instance is shared by everything that
# talks to the same agent.

logger = logging.getLogger(__name__)


class ApiRateLimiter:
    def __init__(self, rate: int = 99, interval: float = 60.0, concurrency: int = 10):
        if rate < 1 or concurrency < 1 or interval <= 0:
            raise ValueError("rate, interval and concurrency must be positive")
        self.capacity = rate
        self.refill_per_second = rate / interval
        self.concurrency = concurrency
        self.in_flight = 0
        self.max_in_flight = 0
        self._tokens = float(rate)
        self._last_update = time.monotonic()
        self._lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(concurrency)

    def _refill(self):
        now = time.monotonic()
        elapsed = now - self._last_update
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
        self._last_update = now

    async def _take_token(self):
        # Waiters queue up on the lock, so tokens are handed out first come, first served
        async with self._lock:
            self._refill()
            while self._tokens < 1:
                wait_time = (1 - self._tokens) / self.refill_per_second
                rate_limiter_waits_counter.inc()
                logger.debug(f"API rate limit reached, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._refill()
            self._tokens -= 1

    async def __aenter__(self):
        await self._semaphore.acquire()
        try:
            await self._take_token()
        except BaseException:
            self._semaphore.release()
            raise
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.in_flight -= 1
        self._semaphore.release()
        return False

    async def run(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        """Runs one coroutine function inside a rate limit slot."""
        async with self:
            return await func(*args, **kwargs)
