"""
Unit tests for the store circuit breaker.
"""

import pytest

from quotawatch.core.exceptions import StoreCircuitOpenError
from quotawatch.core.redis.resilience import CircuitState, StoreResilience

pytestmark = pytest.mark.unit


class MonotonicClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def _ok():
    return "ok"


async def _boom():
    raise ConnectionError("down")


@pytest.fixture
def mono() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def breaker(mono) -> StoreResilience:
    return StoreResilience(
        failure_threshold=3, recovery_timeout_seconds=30, success_threshold=2, clock=mono
    )


async def _fail_times(breaker, count):
    for _ in range(count):
        with pytest.raises(ConnectionError):
            await breaker.execute(_boom, "GET")


class TestCircuitBreaker:
    async def test_success_passes_through(self, breaker):
        assert await breaker.execute(_ok, "GET") == "ok"
        assert breaker.is_closed

    async def test_opens_after_threshold(self, breaker):
        await _fail_times(breaker, 3)

        assert breaker.state is CircuitState.OPEN
        with pytest.raises(StoreCircuitOpenError) as exc_info:
            await breaker.execute(_ok, "GET")
        assert exc_info.value.retry_after == pytest.approx(30)

    async def test_success_resets_failure_count(self, breaker):
        await _fail_times(breaker, 2)
        await breaker.execute(_ok, "GET")
        await _fail_times(breaker, 2)

        assert breaker.is_closed

    async def test_half_open_then_closed(self, breaker, mono):
        await _fail_times(breaker, 3)
        mono.now += 30

        await breaker.execute(_ok, "GET")
        assert breaker.is_half_open

        await breaker.execute(_ok, "GET")
        assert breaker.is_closed

    async def test_half_open_failure_reopens(self, breaker, mono):
        await _fail_times(breaker, 3)
        mono.now += 31

        await _fail_times(breaker, 1)

        assert breaker.is_open

    async def test_manual_controls(self, breaker):
        await breaker.force_open()
        assert breaker.is_open

        await breaker.reset()
        assert breaker.is_closed
        assert breaker.get_status()["failure_count"] == 0
