"""
Accounting Store subsystem.

Exports the store contract, the Redis and in-memory implementations, the
circuit breaker and the per-store metrics collector.
"""

from quotawatch.core.redis.memory import InMemoryAccountingStore
from quotawatch.core.redis.metrics import OperationMetrics, StoreMetrics
from quotawatch.core.redis.resilience import CircuitState, StoreResilience
from quotawatch.core.redis.service import RedisAccountingStore
from quotawatch.core.redis.store import AccountingStore, StoreHealth

__all__ = [
    "AccountingStore",
    "StoreHealth",
    "RedisAccountingStore",
    "InMemoryAccountingStore",
    "StoreResilience",
    "CircuitState",
    "StoreMetrics",
    "OperationMetrics",
]
