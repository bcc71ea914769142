"""
Unit tests for RedisAccountingStore against a mocked redis.asyncio client.

Covers error translation, the bounded timeout, the circuit breaker gate and
per-operation metrics. Real command semantics are covered by the
integration suite.
"""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from quotawatch.core.exceptions import (
    StoreCircuitOpenError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from quotawatch.core.redis.metrics import StoreMetrics
from quotawatch.core.redis.resilience import StoreResilience
from quotawatch.core.redis.service import RedisAccountingStore

pytestmark = pytest.mark.unit


@pytest.fixture
def client(mocker):
    mock_client = mocker.MagicMock()
    mock_client.get = mocker.AsyncMock(return_value="3")
    mock_client.incrby = mocker.AsyncMock(return_value=4)
    mock_client.ttl = mocker.AsyncMock(return_value=-2)
    mock_client.zrange = mocker.AsyncMock(return_value=[("abc", 2.0), ("def", 1.0)])
    mock_client.ping = mocker.AsyncMock(return_value=True)
    mock_client.aclose = mocker.AsyncMock()
    return mock_client


@pytest.fixture
def store(client):
    return RedisAccountingStore(
        client,
        operation_timeout_ms=50,
        resilience=StoreResilience(failure_threshold=2, recovery_timeout_seconds=30),
        metrics=StoreMetrics(slow_operation_ms=1000),
    )


class TestCommands:
    async def test_get_and_increment(self, store, client):
        assert await store.get("k") == "3"
        assert await store.increment("k") == 4
        client.incrby.assert_awaited_once_with("k", 1)

    async def test_ttl_passes_redis_semantics(self, store):
        assert await store.ttl("missing") == -2

    async def test_sorted_set_range_descending(self, store, client):
        result = await store.sorted_set_range_descending("z", 0, 9)

        assert result == [("abc", 2.0), ("def", 1.0)]
        client.zrange.assert_awaited_once_with("z", 0, 9, desc=True, withscores=True)

    async def test_metrics_recorded(self, store):
        await store.get("k")
        await store.get("k")

        summary = store.metrics.get_summary()
        assert summary["operations"]["GET"]["total_count"] == 2
        assert summary["total_failures"] == 0


class TestFailures:
    async def test_connection_error_translated(self, store, client):
        client.get.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.get("k")

        assert exc_info.value.operation == "GET"
        assert store.metrics.get_operation("GET")["failure_count"] == 1

    async def test_timeout_translated(self, store, client):
        async def hang(*args, **kwargs):
            await asyncio.sleep(1)

        client.get.side_effect = hang

        with pytest.raises(StoreTimeoutError):
            await store.get("k")

        assert store.metrics.get_operation("GET")["timeout_count"] == 1

    async def test_circuit_opens_and_fails_fast(self, store, client):
        client.get.side_effect = RedisConnectionError("refused")
        for _ in range(2):
            with pytest.raises(StoreUnavailableError):
                await store.get("k")

        client.get.reset_mock()
        with pytest.raises(StoreCircuitOpenError):
            await store.get("k")

        client.get.assert_not_awaited()


class TestHealth:
    async def test_health_check_ok(self, store):
        health = await store.health_check()

        assert health.connected is True
        assert health.latency_ms is not None

    async def test_health_check_failure_never_raises(self, store, client):
        client.ping.side_effect = RedisConnectionError("refused")

        health = await store.health_check()

        assert health.connected is False
        assert "refused" in health.error

    async def test_close(self, store, client):
        await store.close()

        client.aclose.assert_awaited_once()
