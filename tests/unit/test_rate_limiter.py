# /tests/unit/test_rate_limiter.py
import asyncio
import time

import pytest

from cx_connector.errors import CircuitOpenError
from cx_connector.utils.circuit_breaker import CircuitBreaker, CircuitState
from cx_connector.utils.rate_limiter import ApiRateLimiter


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    limiter = ApiRateLimiter(rate=100, interval=1.0, concurrency=3)

    async def slow_call():
        await asyncio.sleep(0.01)
        return limiter.in_flight

    results = await asyncio.gather(*(limiter.run(slow_call) for _ in range(10)))

    assert max(results) <= 3
    assert limiter.max_in_flight == 3
    assert limiter.in_flight == 0


@pytest.mark.asyncio
async def test_calls_wait_for_tokens(mocker):
    waits = mocker.patch("cx_connector.utils.rate_limiter.rate_limiter_waits_counter")
    limiter = ApiRateLimiter(rate=2, interval=0.1, concurrency=10)

    async def call():
        return True

    start = time.monotonic()
    for _ in range(3):
        assert await limiter.run(call)
    elapsed = time.monotonic() - start

    assert elapsed >= 0.04
    waits.inc.assert_called()


@pytest.mark.asyncio
async def test_slot_is_released_on_error():
    limiter = ApiRateLimiter(rate=10, interval=1.0, concurrency=1)

    async def failing():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await limiter.run(failing)

    assert limiter.in_flight == 0
    assert await asyncio.wait_for(limiter.run(asyncio.sleep, 0), timeout=1) is None


def test_invalid_limits_are_rejected():
    with pytest.raises(ValueError):
        ApiRateLimiter(rate=0)
    with pytest.raises(ValueError):
        ApiRateLimiter(concurrency=0)


@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_failures():
    breaker = CircuitBreaker("test", failure_threshold=2, timeout=60)

    async def failing():
        raise ConnectionError("down")

    for _ in range(2):
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

    assert breaker.state is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.call(asyncio.sleep, 0)


@pytest.mark.asyncio
async def test_circuit_breaker_recovers_after_timeout():
    breaker = CircuitBreaker("test", failure_threshold=1, timeout=0)

    async def failing():
        raise ConnectionError("down")

    async def ok():
        return "ok"

    with pytest.raises(ConnectionError):
        await breaker.call(failing)
    await asyncio.sleep(0.01)

    assert await breaker.call(ok) == "ok"
    assert breaker.state is CircuitState.CLOSED
