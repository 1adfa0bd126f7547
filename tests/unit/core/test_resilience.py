# Circuit breaker unit tests
import asyncio

import pytest
from unittest.mock import AsyncMock

from app.core.enums import CircuitState
from app.core.exceptions import BreakerOpenError, NotFoundError, UpstreamError
from app.core.resilience import BreakerConfig, BreakerRegistry, CircuitBreaker


def make_breaker(clock, threshold=3, **kwargs):
    config = BreakerConfig(failure_threshold=threshold, window_seconds=60, reset_timeout=30, **kwargs)
    return CircuitBreaker("test.op", config, clock=clock, ignored_exceptions=(NotFoundError,))


async def trip(breaker, times):
    failing = AsyncMock(side_effect=UpstreamError("boom"))
    for _ in range(times):
        with pytest.raises(UpstreamError):
            await breaker.fire(failing)


"""
1. Closed state
"""

@pytest.mark.asyncio
async def test_closed_breaker_passes_calls_through(clock):
    breaker = make_breaker(clock)
    fn = AsyncMock(return_value="ok")

    result = await breaker.fire(fn, "a", key="b")

    assert result == "ok"
    fn.assert_awaited_once_with("a", key="b")
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_opens_after_threshold_failures_in_window(clock):
    breaker = make_breaker(clock, threshold=3)

    await trip(breaker, 2)
    assert breaker.state == CircuitState.CLOSED

    await trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_failures_outside_window_are_forgotten(clock):
    breaker = make_breaker(clock, threshold=3)

    await trip(breaker, 2)
    clock.advance(61)
    await trip(breaker, 1)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 1


@pytest.mark.asyncio
async def test_ignored_exceptions_do_not_count(clock):
    breaker = make_breaker(clock, threshold=1)
    fn = AsyncMock(side_effect=NotFoundError("product", "1"))

    with pytest.raises(NotFoundError):
        await breaker.fire(fn)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


"""
2. Open state
"""

@pytest.mark.asyncio
async def test_open_breaker_fails_fast_without_calling(clock):
    breaker = make_breaker(clock)
    breaker.open()
    fn = AsyncMock(return_value="never")

    with pytest.raises(BreakerOpenError) as exc_info:
        await breaker.fire(fn)

    fn.assert_not_awaited()
    assert exc_info.value.reason == "circuit_open"
    assert exc_info.value.breaker_name == "test.op"
    assert isinstance(exc_info.value, UpstreamError)


@pytest.mark.asyncio
async def test_open_breaker_reports_remaining_cooldown(clock):
    breaker = make_breaker(clock)
    breaker.open()
    clock.advance(10)

    with pytest.raises(BreakerOpenError) as exc_info:
        await breaker.fire(AsyncMock())

    assert exc_info.value.retry_after == pytest.approx(20)


"""
3. Half-open probing
"""

@pytest.mark.asyncio
async def test_moves_to_half_open_after_cooldown(clock):
    breaker = make_breaker(clock)
    breaker.open()

    clock.advance(30)

    assert breaker.state == CircuitState.HALF_OPEN


@pytest.mark.asyncio
async def test_successful_probe_closes(clock):
    breaker = make_breaker(clock)
    breaker.open()
    clock.advance(30)

    assert await breaker.fire(AsyncMock(return_value=1)) == 1
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_failed_probe_reopens(clock):
    breaker = make_breaker(clock)
    breaker.open()
    clock.advance(30)

    await trip(breaker, 1)

    assert breaker.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_only_one_probe_in_flight(clock):
    breaker = make_breaker(clock)
    breaker.open()
    clock.advance(30)

    release = asyncio.Event()

    async def slow_probe():
        await release.wait()
        return "probe"

    probe_task = asyncio.create_task(breaker.fire(slow_probe))
    await asyncio.sleep(0)

    second = AsyncMock()
    with pytest.raises(BreakerOpenError):
        await breaker.fire(second)
    second.assert_not_awaited()

    release.set()
    assert await probe_task == "probe"
    assert breaker.state == CircuitState.CLOSED


"""
4. Retry interaction and timeouts
"""

@pytest.mark.asyncio
async def test_each_fire_counts_as_one_trial(clock):
    """A fire whose function retries internally still records a single failure"""
    breaker = make_breaker(clock, threshold=3)
    attempts = {"n": 0}

    async def retrying_call():
        for _ in range(3):
            attempts["n"] += 1
        raise UpstreamError("exhausted")

    with pytest.raises(UpstreamError):
        await breaker.fire(retrying_call)

    assert attempts["n"] == 3
    assert breaker.failure_count == 1
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_call_timeout_counts_as_failure(clock):
    breaker = make_breaker(clock, threshold=1, call_timeout=0.01)

    async def hangs():
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        await breaker.fire(hangs)

    assert breaker.state == CircuitState.OPEN


"""
5. Registry
"""

def test_registry_creates_one_breaker_per_name(clock):
    registry = BreakerRegistry(clock=clock)

    assert registry.get("product.get") is registry.get("product.get")
    assert registry.get("product.get") is not registry.get("product.create")
    assert registry.names() == ["product.create", "product.get"]


def test_registry_status_and_reset(clock):
    registry = BreakerRegistry(clock=clock)
    registry.get("product.get").open()
    registry.get("product.create")

    status = registry.status()
    assert status["health"] == "degraded"
    assert status["open_circuits"] == ["product.get"]
    assert status["breakers"]["product.get"]["state"] == "open"

    assert registry.reset("product.get") == 1
    assert registry.status()["health"] == "healthy"
    assert registry.reset("missing") == 0
    assert registry.reset() == 2


def test_registry_shutdown_forgets_breakers(clock):
    registry = BreakerRegistry(clock=clock)
    registry.get("a")
    registry.shutdown()
    assert registry.names() == []
