"""
Accounting Store contract.

Purpose
-------
The minimal set of shared-store primitives the rate limiter and the
performance telemetry need: string counters with expiry, capped lists,
sorted-set scores and hash counters. Each call is individually atomic;
nothing here offers multi-key transactions.

Implementations
---------------
- `RedisAccountingStore` (production, `quotawatch.core.redis.service`)
- `InMemoryAccountingStore` (tests and local runs, `quotawatch.core.redis.memory`)

Error Contract
--------------
Every method raises a `StoreError` subclass on failure:
`StoreUnavailableError` when the store cannot be reached, `StoreTimeoutError`
when the bounded timeout is exceeded, `StoreCircuitOpenError` while the
circuit breaker refuses calls. `health_check()` never raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class StoreHealth:
    """Result of a store ping."""

    connected: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


class AccountingStore(ABC):
    """Async key-value store with counters, lists, sorted sets and hashes."""

    # ─────────────────────────────────────────────────────────────────────
    # Strings / counters
    # ─────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the string value, or None when the key is absent."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a string with an expiry, replacing any previous value."""

    @abstractmethod
    async def increment(self, key: str, amount: int = 1) -> int:
        """Atomically add `amount` (absent key counts as 0) and return the new value."""

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a key's time-to-live. False when the key does not exist."""

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining seconds; -2 when the key is absent, -1 when it has no expiry."""

    # ─────────────────────────────────────────────────────────────────────
    # Lists
    # ─────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def list_push_left(self, key: str, *values: str) -> int:
        """Prepend values (newest first) and return the new length."""

    @abstractmethod
    async def list_trim(self, key: str, start: int, stop: int) -> None:
        """Keep only elements in the inclusive range [start, stop]."""

    @abstractmethod
    async def list_range(self, key: str, start: int, stop: int) -> List[str]:
        """Elements in the inclusive range [start, stop]; -1 means the last one."""

    # ─────────────────────────────────────────────────────────────────────
    # Sorted sets
    # ─────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def sorted_set_increment_score(
        self, key: str, member: str, amount: float = 1.0
    ) -> float:
        """Add `amount` to a member's score and return the new score."""

    @abstractmethod
    async def sorted_set_range_descending(
        self, key: str, start: int, stop: int
    ) -> List[Tuple[str, float]]:
        """Members with scores, highest first, in the inclusive rank range."""

    # ─────────────────────────────────────────────────────────────────────
    # Hashes
    # ─────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def hash_increment_field(self, key: str, field: str, amount: int = 1) -> int:
        """Atomically add `amount` to a hash field and return the new value."""

    @abstractmethod
    async def hash_get_all(self, key: str) -> Dict[str, str]:
        """All fields of a hash; empty dict when the key is absent."""

    # ─────────────────────────────────────────────────────────────────────
    # Keys / lifecycle
    # ─────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""

    @abstractmethod
    async def health_check(self) -> StoreHealth:
        """Ping the store. Never raises."""

    async def close(self) -> None:
        """Release connections. Default is a no-op."""
