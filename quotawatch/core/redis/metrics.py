"""
Accounting Store metrics collector.

Purpose
-------
In-memory per-operation statistics for every call the store client makes:
counts, failures, timeouts and latency percentiles. Metrics are exposed via
`get_summary()` for health endpoints and operator scripts.

Responsibilities
----------------
- Track operation counts, failures and latencies (GET, INCR, EXPIRE, ...)
- Calculate nearest-rank percentile statistics (p50, p95, p99)
- Log slow operations
- Keep a short history of health check results

Non-Responsibilities
--------------------
- No store operations (pure metrics collection)
- No persistence (in-memory only)

Configuration Keys
------------------
- store.metrics.slow_operation_ms : int (default 100)

Architecture Notes
------------------
- One collector per store instance; no module-level global state
- Latency samples are bounded by a deque per operation
- Thread-safe via threading.Lock
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict

from quotawatch.core.config import ConfigManager
from quotawatch.core.constants import STORE_METRICS_SAMPLE_SIZE, STORE_SLOW_OPERATION_MS
from quotawatch.core.logging.logger import get_logger
from quotawatch.core.stats import nearest_rank_percentile

logger = get_logger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# METRIC DATA STRUCTURES
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class OperationMetrics:
    """Metrics for a single store operation type."""

    total_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0
    total_latency_ms: float = 0.0
    min_latency_ms: float = float("inf")
    max_latency_ms: float = 0.0
    latencies: Deque[float] = field(
        default_factory=lambda: deque(maxlen=STORE_METRICS_SAMPLE_SIZE)
    )

    def record(self, latency_ms: float, success: bool, timed_out: bool = False) -> None:
        self.total_count += 1

        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
        if timed_out:
            self.timeout_count += 1

        self.total_latency_ms += latency_ms
        self.min_latency_ms = min(self.min_latency_ms, latency_ms)
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)
        self.latencies.append(latency_ms)

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.total_count if self.total_count > 0 else 0.0

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage."""
        return (self.success_count / self.total_count * 100) if self.total_count > 0 else 0.0

    def percentile(self, p: float) -> float:
        return nearest_rank_percentile(sorted(self.latencies), p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_count": self.total_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "timeout_count": self.timeout_count,
            "success_rate_pct": round(self.success_rate, 2),
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "min_latency_ms": (
                round(self.min_latency_ms, 2)
                if self.min_latency_ms != float("inf")
                else 0.0
            ),
            "max_latency_ms": round(self.max_latency_ms, 2),
            "p50_latency_ms": round(self.percentile(50), 2),
            "p95_latency_ms": round(self.percentile(95), 2),
            "p99_latency_ms": round(self.percentile(99), 2),
        }


# ═════════════════════════════════════════════════════════════════════════════
# STORE METRICS COLLECTOR
# ═════════════════════════════════════════════════════════════════════════════


class StoreMetrics:
    """
    Per-store collector of operation metrics.

    Example
    -------
    >>> metrics = StoreMetrics()
    >>> metrics.record_operation("INCR", 1.2)
    >>> metrics.get_summary()["operations"]["INCR"]["total_count"]
    1
    """

    def __init__(self, slow_operation_ms: float | None = None) -> None:
        self._operations: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._health_checks: Deque[Dict[str, Any]] = deque(maxlen=100)
        self._lock = Lock()
        self._start_time: float = time.time()

        if slow_operation_ms is None:
            configured = ConfigManager.get(
                "store.metrics.slow_operation_ms", STORE_SLOW_OPERATION_MS
            )
            slow_operation_ms = (
                float(configured)
                if isinstance(configured, (int, float)) and not isinstance(configured, bool)
                else float(STORE_SLOW_OPERATION_MS)
            )
        self._slow_operation_ms = slow_operation_ms

    # ═════════════════════════════════════════════════════════════════════════
    # RECORDING
    # ═════════════════════════════════════════════════════════════════════════

    def record_operation(
        self,
        operation: str,
        latency_ms: float,
        success: bool = True,
        timed_out: bool = False,
    ) -> None:
        """
        Record a store operation.

        Parameters
        ----------
        operation : str
            Operation type (GET, INCR, EXPIRE, ...)
        latency_ms : float
            Operation latency in milliseconds
        success : bool
            Whether the operation succeeded
        timed_out : bool
            Whether the operation hit the bounded timeout
        """
        with self._lock:
            self._operations[operation].record(latency_ms, success, timed_out)

        if latency_ms > self._slow_operation_ms:
            logger.warning(
                "Slow store operation detected",
                extra={
                    "operation": operation,
                    "latency_ms": round(latency_ms, 2),
                    "threshold_ms": self._slow_operation_ms,
                    "success": success,
                },
            )

    def record_health_check(self, success: bool, latency_ms: float) -> None:
        with self._lock:
            self._health_checks.append(
                {
                    "timestamp": time.time(),
                    "success": success,
                    "latency_ms": round(latency_ms, 2),
                }
            )

    # ═════════════════════════════════════════════════════════════════════════
    # RETRIEVAL
    # ═════════════════════════════════════════════════════════════════════════

    def get_operation(self, operation: str) -> Dict[str, Any]:
        with self._lock:
            if operation not in self._operations:
                return OperationMetrics().to_dict()
            return self._operations[operation].to_dict()

    def get_summary(self) -> Dict[str, Any]:
        """Full snapshot: per-operation stats, totals and recent health checks."""
        with self._lock:
            operations = {
                name: metrics.to_dict() for name, metrics in self._operations.items()
            }
            total = sum(m.total_count for m in self._operations.values())
            failures = sum(m.failure_count for m in self._operations.values())
            timeouts = sum(m.timeout_count for m in self._operations.values())
            health_checks = list(self._health_checks)

        return {
            "uptime_seconds": round(time.time() - self._start_time, 2),
            "total_operations": total,
            "total_failures": failures,
            "total_timeouts": timeouts,
            "error_rate_pct": round(failures / total * 100, 2) if total else 0.0,
            "operations": operations,
            "recent_health_checks": health_checks[-10:],
        }

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._health_checks.clear()
            self._start_time = time.time()

        logger.info("Store metrics reset")
