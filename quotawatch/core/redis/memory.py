"""
InMemoryAccountingStore: dict-backed Accounting Store.

Purpose
-------
A single-process implementation of the `AccountingStore` contract with
Redis-compatible semantics (TTL sentinels, list trimming, sorted-set
ordering, empty containers removed). Used by the unit tests and for local
runs without a Redis server.

Architecture Notes
------------------
- Expiry is evaluated lazily against an injectable clock, so tests can
  advance time without sleeping.
- No method awaits internally, so each call is atomic with respect to other
  coroutines on the same loop.
- Type mismatches raise `StoreError` (the Redis store raises
  `StoreUnavailableError` for the equivalent WRONGTYPE reply).
"""

from __future__ import annotations

import math
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from quotawatch.core.constants import TTL_KEY_MISSING, TTL_NO_EXPIRY
from quotawatch.core.exceptions import StoreError
from quotawatch.core.redis.store import AccountingStore, StoreHealth


class _Hash(dict):
    pass


class _SortedSet(dict):
    pass


def _inclusive_slice(items: List[Any], start: int, stop: int) -> List[Any]:
    length = len(items)
    if start < 0:
        start = max(0, length + start)
    if stop < 0:
        stop = length + stop
    if start > stop or start >= length:
        return []
    return items[start : stop + 1]


class InMemoryAccountingStore(AccountingStore):
    """
    Accounting Store held in process memory.

    Example
    -------
    >>> clock = FakeClock(1_700_000_000)
    >>> store = InMemoryAccountingStore(clock=clock)
    >>> await store.increment("rate:auth:1.2.3.4")
    1
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: Dict[str, Any] = {}
        self._expires_at: Dict[str, float] = {}

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _purge_if_expired(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)

    def _read(self, key: str, kind: type, operation: str) -> Optional[Any]:
        self._purge_if_expired(key)
        value = self._data.get(key)
        if value is not None and not isinstance(value, kind):
            raise StoreError(
                operation,
                key=key,
                message="WRONGTYPE Operation against a key holding the wrong kind of value",
            )
        return value

    def _drop_if_empty(self, key: str) -> None:
        value = self._data.get(key)
        if isinstance(value, (list, dict)) and not value:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)

    def keys(self) -> List[str]:
        """Live (unexpired) keys, sorted."""
        for key in list(self._data):
            self._purge_if_expired(key)
        return sorted(self._data)

    def clear(self) -> None:
        self._data.clear()
        self._expires_at.clear()

    # ─────────────────────────────────────────────────────────────────────
    # Strings / counters
    # ─────────────────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[str]:
        return self._read(key, str, "GET")

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = str(value)
        self._expires_at[key] = self._clock() + ttl_seconds

    async def increment(self, key: str, amount: int = 1) -> int:
        current = self._read(key, str, "INCR")
        try:
            value = int(current) if current is not None else 0
        except ValueError as exc:
            raise StoreError(
                "INCR", key=key, message="value is not an integer or out of range"
            ) from exc

        value += amount
        self._data[key] = str(value)
        return value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        self._purge_if_expired(key)
        if key not in self._data:
            return False
        if ttl_seconds <= 0:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
            return True
        self._expires_at[key] = self._clock() + ttl_seconds
        return True

    async def ttl(self, key: str) -> int:
        self._purge_if_expired(key)
        if key not in self._data:
            return TTL_KEY_MISSING
        deadline = self._expires_at.get(key)
        if deadline is None:
            return TTL_NO_EXPIRY
        return max(0, math.ceil(deadline - self._clock()))

    # ─────────────────────────────────────────────────────────────────────
    # Lists
    # ─────────────────────────────────────────────────────────────────────

    async def list_push_left(self, key: str, *values: str) -> int:
        items = self._read(key, list, "LPUSH")
        if items is None:
            items = []
            self._data[key] = items
        for value in values:
            items.insert(0, str(value))
        return len(items)

    async def list_trim(self, key: str, start: int, stop: int) -> None:
        items = self._read(key, list, "LTRIM")
        if items is None:
            return
        self._data[key] = _inclusive_slice(items, start, stop)
        self._drop_if_empty(key)

    async def list_range(self, key: str, start: int, stop: int) -> List[str]:
        items = self._read(key, list, "LRANGE")
        if items is None:
            return []
        return list(_inclusive_slice(items, start, stop))

    # ─────────────────────────────────────────────────────────────────────
    # Sorted sets
    # ─────────────────────────────────────────────────────────────────────

    async def sorted_set_increment_score(
        self, key: str, member: str, amount: float = 1.0
    ) -> float:
        scores = self._read(key, _SortedSet, "ZINCRBY")
        if scores is None:
            scores = _SortedSet()
            self._data[key] = scores
        scores[member] = float(scores.get(member, 0.0)) + amount
        return scores[member]

    async def sorted_set_range_descending(
        self, key: str, start: int, stop: int
    ) -> List[Tuple[str, float]]:
        scores = self._read(key, _SortedSet, "ZRANGE")
        if not scores:
            return []
        # Redis orders ties by member, descending when reversed
        ordered = sorted(scores.items(), key=lambda item: (item[1], item[0]), reverse=True)
        return _inclusive_slice(ordered, start, stop)

    # ─────────────────────────────────────────────────────────────────────
    # Hashes
    # ─────────────────────────────────────────────────────────────────────

    async def hash_increment_field(self, key: str, field: str, amount: int = 1) -> int:
        fields = self._read(key, _Hash, "HINCRBY")
        if fields is None:
            fields = _Hash()
            self._data[key] = fields
        try:
            value = int(fields.get(field, "0"))
        except ValueError as exc:
            raise StoreError(
                "HINCRBY", key=key, message="hash value is not an integer"
            ) from exc
        value += amount
        fields[field] = str(value)
        return value

    async def hash_get_all(self, key: str) -> Dict[str, str]:
        fields = self._read(key, _Hash, "HGETALL")
        return dict(fields) if fields else {}

    # ─────────────────────────────────────────────────────────────────────
    # Keys / lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            self._purge_if_expired(key)
            if key in self._data:
                deleted += 1
                self._data.pop(key, None)
                self._expires_at.pop(key, None)
        return deleted

    async def health_check(self) -> StoreHealth:
        return StoreHealth(connected=True, latency_ms=0.0)
