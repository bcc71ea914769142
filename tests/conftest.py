"""
Pytest Configuration and Fixtures for quotawatch Tests
======================================================

Purpose
-------
Centralized fixtures for the quotawatch test suite: a controllable clock,
in-memory and failing Accounting Stores, component factories and the
Redis testcontainer.

Architecture Notes
------------------
- Unit tests run against `InMemoryAccountingStore` with a `FakeClock`
- Integration tests use testcontainers (real Redis) and are skipped when
  Docker is not reachable
- The environment is pinned before quotawatch is imported because `Config`
  loads on import
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_TO_FILE"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "true"

from datetime import datetime, timezone
from typing import Any, Generator, Optional

import pytest

from quotawatch.core.config import ConfigManager
from quotawatch.core.exceptions import StoreUnavailableError
from quotawatch.core.logging.logger import get_logger
from quotawatch.core.redis.memory import InMemoryAccountingStore
from quotawatch.core.redis.store import AccountingStore, StoreHealth
from quotawatch.modules.performance import (
    ExtractionMethod,
    Intent,
    MetricsAggregator,
    MetricsRecorder,
    PerformanceRecord,
    PerformanceSettings,
)
from quotawatch.modules.ratelimit import RateLimiter, TrafficClassRegistry

logger = get_logger(__name__)

# ============================================================================
# TEST DOUBLES
# ============================================================================


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_704_110_400.0) -> None:  # 2024-01-01T12:00:00Z
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore(AccountingStore):
    """Store whose every operation raises `StoreUnavailableError`."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, operation: str, key: Optional[str] = None) -> Any:
        self.calls.append(operation)
        raise StoreUnavailableError(operation, key=key, original_error=ConnectionError("refused"))

    async def get(self, key):
        self._fail("GET", key)

    async def set_with_ttl(self, key, value, ttl_seconds):
        self._fail("SET", key)

    async def increment(self, key, amount=1):
        self._fail("INCR", key)

    async def expire(self, key, ttl_seconds):
        self._fail("EXPIRE", key)

    async def ttl(self, key):
        self._fail("TTL", key)

    async def list_push_left(self, key, *values):
        self._fail("LPUSH", key)

    async def list_trim(self, key, start, stop):
        self._fail("LTRIM", key)

    async def list_range(self, key, start, stop):
        self._fail("LRANGE", key)

    async def sorted_set_increment_score(self, key, member, amount=1.0):
        self._fail("ZINCRBY", key)

    async def sorted_set_range_descending(self, key, start, stop):
        self._fail("ZRANGE", key)

    async def hash_increment_field(self, key, field, amount=1):
        self._fail("HINCRBY", key)

    async def hash_get_all(self, key):
        self._fail("HGETALL", key)

    async def delete(self, *keys):
        self._fail("DEL")

    async def health_check(self):
        return StoreHealth(connected=False, error="refused")


# ============================================================================
# CONFIG ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config_manager() -> Generator[None, None, None]:
    """Every test starts from the YAML defaults on disk."""
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# ============================================================================
# STORE FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryAccountingStore:
    return InMemoryAccountingStore(clock=clock)


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


# ============================================================================
# COMPONENT FIXTURES
# ============================================================================


@pytest.fixture
def registry() -> TrafficClassRegistry:
    return TrafficClassRegistry()


@pytest.fixture
def limiter(memory_store, registry, clock) -> RateLimiter:
    return RateLimiter(memory_store, registry, enabled=True, clock=clock)


@pytest.fixture
def settings() -> PerformanceSettings:
    return PerformanceSettings()


@pytest.fixture
def recorder(memory_store, settings) -> MetricsRecorder:
    return MetricsRecorder(memory_store, settings)


@pytest.fixture
def aggregator(memory_store, settings) -> MetricsAggregator:
    return MetricsAggregator(memory_store, settings)


def make_record(
    query: str = "find a plumber",
    total_time: float = 100.0,
    method: ExtractionMethod = ExtractionMethod.REGEX,
    intent: Intent = Intent.FIND_BUSINESS,
    timestamp: Optional[datetime] = None,
    **overrides: Any,
) -> PerformanceRecord:
    """PerformanceRecord factory; phases split 40/50/10 of the total."""
    fields: dict[str, Any] = {
        "query": query,
        "intent": intent,
        "extraction_method": method,
        "extraction_time": total_time * 0.4,
        "search_time": total_time * 0.5,
        "format_time": total_time * 0.1,
        "total_time": total_time,
        "result_count": 3,
        "confidence": 0.9,
        "timestamp": timestamp or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return PerformanceRecord(**fields)


@pytest.fixture
def record_factory():
    return make_record


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def redis_container():
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    Skips the requesting tests when Docker is not available.
    """
    from testcontainers.redis import RedisContainer

    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for Redis testcontainer: {exc}")

    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()
