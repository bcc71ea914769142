"""
RedisAccountingStore: Redis-backed Accounting Store client.

Purpose
-------
Adapt the redis-py asyncio client to the `AccountingStore` contract with:
- One execution path for every command
- Circuit breaker gating (`StoreResilience`)
- A bounded per-operation timeout
- Translation of client errors into the `StoreError` hierarchy
- Per-operation latency metrics (`StoreMetrics`)

Responsibilities
----------------
- Build a pooled client from `Config` (`from_config()`)
- Execute commands with timeout, circuit breaker and metrics
- Report health via PING without going through the circuit breaker
- Close the pool on shutdown

Non-Responsibilities
--------------------
- Retries (none; callers decide how to degrade)
- Business logic of any kind

Configuration Keys
------------------
- REDIS_URL / REDIS_PASSWORD        (env)
- REDIS_MAX_CONNECTIONS             (env, default 50)
- REDIS_OPERATION_TIMEOUT_MS        (env, default 200)

Architecture Notes
------------------
- `decode_responses=True`: every value comes back as `str`
- `retry_on_timeout=False`: the client itself must not retry either
- Timeouts are enforced with `asyncio.wait_for` around each command, so a
  hung connection cannot stall an admission decision past the bound
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from quotawatch.core.config.config import Config
from quotawatch.core.constants import (
    STORE_HEALTH_CHECK_TIMEOUT_MS,
    STORE_OPERATION_TIMEOUT_MS,
)
from quotawatch.core.exceptions import (
    StoreCircuitOpenError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from quotawatch.core.logging.logger import get_logger
from quotawatch.core.redis.metrics import StoreMetrics
from quotawatch.core.redis.resilience import StoreResilience
from quotawatch.core.redis.store import AccountingStore, StoreHealth

logger = get_logger(__name__)

T = TypeVar("T")


class RedisAccountingStore(AccountingStore):
    """
    Accounting Store over a redis-py asyncio client.

    Example
    -------
    >>> store = RedisAccountingStore.from_config()
    >>> await store.increment("rate:search:u1")
    1
    >>> await store.close()
    """

    def __init__(
        self,
        client: AsyncRedis,
        operation_timeout_ms: float = STORE_OPERATION_TIMEOUT_MS,
        resilience: Optional[StoreResilience] = None,
        metrics: Optional[StoreMetrics] = None,
    ) -> None:
        self._client = client
        self._timeout_ms = operation_timeout_ms
        self._resilience = resilience or StoreResilience.from_config()
        self._metrics = metrics or StoreMetrics()

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def from_config(cls) -> "RedisAccountingStore":
        """Build a pooled client from environment configuration."""
        url = Config.REDIS_URL
        client = AsyncRedis.from_url(
            url,
            password=Config.REDIS_PASSWORD,
            decode_responses=True,
            encoding="utf-8",
            max_connections=Config.REDIS_MAX_CONNECTIONS,
            retry_on_timeout=False,
        )

        logger.info(
            "RedisAccountingStore created",
            extra={
                "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                "max_connections": Config.REDIS_MAX_CONNECTIONS,
                "operation_timeout_ms": Config.REDIS_OPERATION_TIMEOUT_MS,
            },
        )
        return cls(client, operation_timeout_ms=Config.REDIS_OPERATION_TIMEOUT_MS)

    async def close(self) -> None:
        try:
            await self._client.aclose()
            logger.info("RedisAccountingStore closed")
        except (RedisError, OSError) as exc:
            logger.error(
                "Error during RedisAccountingStore shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    @property
    def resilience(self) -> StoreResilience:
        return self._resilience

    @property
    def metrics(self) -> StoreMetrics:
        return self._metrics

    # ═══════════════════════════════════════════════════════════════════════
    # EXECUTION PATH
    # ═══════════════════════════════════════════════════════════════════════

    async def _execute(
        self,
        operation: str,
        key: Optional[str],
        command: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run one client command under circuit breaker, timeout and metrics.

        Raises
        ------
        StoreCircuitOpenError
            Circuit is open; the command was not sent.
        StoreTimeoutError
            The command exceeded the operation timeout.
        StoreUnavailableError
            The client raised a connection, protocol or OS error.
        """
        timeout_seconds = self._timeout_ms / 1000
        start_time = time.monotonic()

        try:
            result = await self._resilience.execute(
                lambda: asyncio.wait_for(command(), timeout=timeout_seconds),
                operation,
            )
        except StoreCircuitOpenError:
            logger.debug(
                "Store call refused by open circuit",
                extra={"operation": operation, "key": key},
            )
            raise
        except (asyncio.TimeoutError, RedisTimeoutError) as exc:
            latency_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_operation(operation, latency_ms, success=False, timed_out=True)
            logger.warning(
                "Store operation timed out",
                extra={
                    "operation": operation,
                    "key": key,
                    "latency_ms": round(latency_ms, 2),
                    "timeout_ms": self._timeout_ms,
                },
            )
            raise StoreTimeoutError(operation, key=key, timeout_ms=self._timeout_ms) from exc
        except (RedisError, OSError) as exc:
            latency_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_operation(operation, latency_ms, success=False)
            logger.warning(
                "Store operation failed",
                extra={
                    "operation": operation,
                    "key": key,
                    "latency_ms": round(latency_ms, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise StoreUnavailableError(operation, key=key, original_error=exc) from exc

        latency_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_operation(operation, latency_ms, success=True)
        logger.debug(
            "Store operation",
            extra={"operation": operation, "key": key, "latency_ms": round(latency_ms, 2)},
        )
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # STRINGS / COUNTERS
    # ═══════════════════════════════════════════════════════════════════════

    async def get(self, key: str) -> Optional[str]:
        return await self._execute("GET", key, lambda: self._client.get(key))

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._execute(
            "SET", key, lambda: self._client.set(key, value, ex=ttl_seconds)
        )

    async def increment(self, key: str, amount: int = 1) -> int:
        value = await self._execute("INCR", key, lambda: self._client.incrby(key, amount))
        return int(value)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        result = await self._execute(
            "EXPIRE", key, lambda: self._client.expire(key, ttl_seconds)
        )
        return bool(result)

    async def ttl(self, key: str) -> int:
        value = await self._execute("TTL", key, lambda: self._client.ttl(key))
        return int(value)

    # ═══════════════════════════════════════════════════════════════════════
    # LISTS
    # ═══════════════════════════════════════════════════════════════════════

    async def list_push_left(self, key: str, *values: str) -> int:
        length = await self._execute("LPUSH", key, lambda: self._client.lpush(key, *values))
        return int(length)

    async def list_trim(self, key: str, start: int, stop: int) -> None:
        await self._execute("LTRIM", key, lambda: self._client.ltrim(key, start, stop))

    async def list_range(self, key: str, start: int, stop: int) -> List[str]:
        values = await self._execute(
            "LRANGE", key, lambda: self._client.lrange(key, start, stop)
        )
        return list(values)

    # ═══════════════════════════════════════════════════════════════════════
    # SORTED SETS
    # ═══════════════════════════════════════════════════════════════════════

    async def sorted_set_increment_score(
        self, key: str, member: str, amount: float = 1.0
    ) -> float:
        score = await self._execute(
            "ZINCRBY", key, lambda: self._client.zincrby(key, amount, member)
        )
        return float(score)

    async def sorted_set_range_descending(
        self, key: str, start: int, stop: int
    ) -> List[Tuple[str, float]]:
        entries = await self._execute(
            "ZRANGE",
            key,
            lambda: self._client.zrange(key, start, stop, desc=True, withscores=True),
        )
        return [(member, float(score)) for member, score in entries]

    # ═══════════════════════════════════════════════════════════════════════
    # HASHES
    # ═══════════════════════════════════════════════════════════════════════

    async def hash_increment_field(self, key: str, field: str, amount: int = 1) -> int:
        value = await self._execute(
            "HINCRBY", key, lambda: self._client.hincrby(key, field, amount)
        )
        return int(value)

    async def hash_get_all(self, key: str) -> Dict[str, str]:
        values = await self._execute("HGETALL", key, lambda: self._client.hgetall(key))
        return dict(values)

    # ═══════════════════════════════════════════════════════════════════════
    # KEYS / HEALTH
    # ═══════════════════════════════════════════════════════════════════════

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        deleted = await self._execute(
            "DEL", ",".join(keys), lambda: self._client.delete(*keys)
        )
        return int(deleted)

    async def health_check(self) -> StoreHealth:
        """
        PING the server directly, bypassing the circuit breaker.

        Returns
        -------
        StoreHealth
            `connected=True` with the ping latency, or `connected=False`
            with the error message.
        """
        start_time = time.monotonic()
        try:
            pong = await asyncio.wait_for(
                self._client.ping(), timeout=STORE_HEALTH_CHECK_TIMEOUT_MS / 1000
            )
        except (asyncio.TimeoutError, RedisError, OSError) as exc:
            latency_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_health_check(False, latency_ms)
            logger.error(
                "Store health check failed",
                extra={
                    "latency_ms": round(latency_ms, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return StoreHealth(connected=False, error=str(exc) or type(exc).__name__)

        latency_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_health_check(bool(pong), latency_ms)
        if not pong:
            logger.warning("Store health check failed: PING returned False")
            return StoreHealth(connected=False, error="PING returned False")

        logger.debug("Store health check passed", extra={"latency_ms": round(latency_ms, 2)})
        return StoreHealth(connected=True, latency_ms=round(latency_ms, 2))

    def get_status(self) -> Dict[str, Any]:
        """Circuit breaker status plus the metrics summary."""
        return {
            "resilience": self._resilience.get_status(),
            "metrics": self._metrics.get_summary(),
        }


__all__ = ["RedisAccountingStore"]
