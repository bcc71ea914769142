"""
Accounting Store circuit breaker.

Purpose
-------
Fail fast while the Accounting Store is unhealthy. Every store call flows
through `StoreResilience.execute()`, which refuses the call outright while
the circuit is OPEN and records the outcome of every call it lets through.

Responsibilities
----------------
- Track consecutive failures and open the circuit at the threshold
- Allow a probe after the recovery timeout (HALF_OPEN)
- Close again after enough consecutive probe successes
- Provide manual `reset()` / `force_open()` and a status snapshot
- Emit structured logs for every state transition

Non-Responsibilities
--------------------
- Retries. Admission decisions sit on the request path, and a late answer is
  worth less than a fail-open answer, so the store client never retries.
- Timeouts and error translation (handled by `RedisAccountingStore`)

Configuration Keys
------------------
- CIRCUIT_BREAKER_FAILURE_THRESHOLD (env)           : int (default 5)
- CIRCUIT_BREAKER_RECOVERY_TIMEOUT (env, seconds)   : int (default 30)
- store.circuit.success_threshold (YAML)            : int (default 2)

Architecture Notes
------------------
- State mutations are protected by asyncio.Lock
- The clock is injectable so tests can step through recovery
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from quotawatch.core.config import Config, ConfigManager
from quotawatch.core.constants import CIRCUIT_BREAKER_SUCCESS_THRESHOLD
from quotawatch.core.exceptions import StoreCircuitOpenError
from quotawatch.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, reject requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


class StoreResilience:
    """
    Circuit breaker guarding Accounting Store calls.

    Example
    -------
    >>> resilience = StoreResilience(failure_threshold=5, recovery_timeout_seconds=30)
    >>> value = await resilience.execute(lambda: client.get("key"), "get")
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout_seconds: float = 30,
        success_threshold: int = CIRCUIT_BREAKER_SUCCESS_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._circuit_state: CircuitState = CircuitState.CLOSED
        self._failure_count: int = 0
        self._success_count: int = 0
        self._last_failure_time: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._lock: asyncio.Lock = asyncio.Lock()
        self._clock = clock

        self._circuit_failure_threshold = max(1, failure_threshold)
        self._circuit_success_threshold = max(1, success_threshold)
        self._circuit_timeout_seconds = recovery_timeout_seconds

        logger.info(
            "StoreResilience initialized",
            extra={
                "circuit_state": self._circuit_state.value,
                "circuit_failure_threshold": self._circuit_failure_threshold,
                "circuit_success_threshold": self._circuit_success_threshold,
                "circuit_timeout_seconds": self._circuit_timeout_seconds,
            },
        )

    @classmethod
    def from_config(cls) -> "StoreResilience":
        """Build a breaker from environment and YAML settings."""
        success_threshold = ConfigManager.get(
            "store.circuit.success_threshold", CIRCUIT_BREAKER_SUCCESS_THRESHOLD
        )
        if not isinstance(success_threshold, int) or isinstance(success_threshold, bool):
            success_threshold = CIRCUIT_BREAKER_SUCCESS_THRESHOLD

        return cls(
            failure_threshold=Config.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout_seconds=Config.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            success_threshold=success_threshold,
        )

    # ═════════════════════════════════════════════════════════════════════════
    # MAIN EXECUTION API
    # ═════════════════════════════════════════════════════════════════════════

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> T:
        """
        Execute a store operation under circuit breaker protection.

        Parameters
        ----------
        operation : Callable
            Zero-argument callable returning the awaitable to run
        operation_name : str
            Operation name for logging

        Returns
        -------
        T
            The result of the operation

        Raises
        ------
        StoreCircuitOpenError
            If the circuit is OPEN and the recovery timeout has not elapsed
        Exception
            Whatever the operation raised, after it has been counted
        """
        if not await self._can_execute():
            raise StoreCircuitOpenError(
                operation_name, retry_after=self._time_until_half_open() or 0.0
            )

        try:
            result = await operation()
        except Exception as exc:
            await self._record_failure()
            logger.debug(
                "Store operation failed under circuit breaker",
                extra={
                    "operation": operation_name,
                    "circuit_state": self._circuit_state.value,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise

        await self._record_success()
        return result

    # ═════════════════════════════════════════════════════════════════════════
    # CIRCUIT BREAKER LOGIC
    # ═════════════════════════════════════════════════════════════════════════

    async def _can_execute(self) -> bool:
        async with self._lock:
            if self._circuit_state == CircuitState.CLOSED:
                return True

            if self._circuit_state == CircuitState.OPEN:
                if self._opened_at is None:
                    return True

                elapsed = self._clock() - self._opened_at
                if elapsed >= self._circuit_timeout_seconds:
                    self._transition_to_half_open()
                    return True
                return False

            # HALF_OPEN lets probes through
            return True

    async def _record_success(self) -> None:
        async with self._lock:
            self._success_count += 1
            self._failure_count = 0

            if self._circuit_state == CircuitState.HALF_OPEN:
                if self._success_count >= self._circuit_success_threshold:
                    self._transition_to_closed()

    async def _record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._success_count = 0
            self._last_failure_time = self._clock()

            if self._circuit_state == CircuitState.CLOSED:
                if self._failure_count >= self._circuit_failure_threshold:
                    self._transition_to_open()
            elif self._circuit_state == CircuitState.HALF_OPEN:
                self._transition_to_open()

    def _transition_to_open(self) -> None:
        old_state = self._circuit_state
        self._circuit_state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._success_count = 0

        logger.warning(
            "Store circuit breaker transitioned to OPEN",
            extra={
                "previous_state": old_state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self._circuit_failure_threshold,
                "timeout_seconds": self._circuit_timeout_seconds,
            },
        )

    def _transition_to_half_open(self) -> None:
        old_state = self._circuit_state
        self._circuit_state = CircuitState.HALF_OPEN
        self._failure_count = 0
        self._success_count = 0

        logger.info(
            "Store circuit breaker transitioned to HALF_OPEN",
            extra={
                "previous_state": old_state.value,
                "timeout_elapsed_seconds": (
                    round(self._clock() - self._opened_at, 2) if self._opened_at else 0
                ),
            },
        )

    def _transition_to_closed(self) -> None:
        old_state = self._circuit_state
        self._circuit_state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None

        logger.info(
            "Store circuit breaker transitioned to CLOSED",
            extra={
                "previous_state": old_state.value,
                "success_threshold_met": self._circuit_success_threshold,
            },
        )

    def _time_until_half_open(self) -> Optional[float]:
        if self._opened_at is None or self._circuit_state != CircuitState.OPEN:
            return None
        return max(0.0, self._circuit_timeout_seconds - (self._clock() - self._opened_at))

    # ═════════════════════════════════════════════════════════════════════════
    # MANUAL CONTROL
    # ═════════════════════════════════════════════════════════════════════════

    async def reset(self) -> None:
        """Manually reset the circuit to CLOSED after the store has recovered."""
        async with self._lock:
            old_state = self._circuit_state
            self._circuit_state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
            self._last_failure_time = None

            logger.info(
                "Store circuit breaker manually reset",
                extra={"previous_state": old_state.value},
            )

    async def force_open(self) -> None:
        """Manually open the circuit, e.g. during store maintenance."""
        async with self._lock:
            self._transition_to_open()
            logger.warning("Store circuit breaker manually forced to OPEN")

    # ═════════════════════════════════════════════════════════════════════════
    # STATUS API
    # ═════════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> CircuitState:
        return self._circuit_state

    @property
    def is_closed(self) -> bool:
        return self._circuit_state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._circuit_state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._circuit_state == CircuitState.HALF_OPEN

    def get_status(self) -> Dict[str, Any]:
        """Current circuit state, counters and configuration."""
        return {
            "circuit_state": self._circuit_state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "circuit_failure_threshold": self._circuit_failure_threshold,
            "circuit_success_threshold": self._circuit_success_threshold,
            "circuit_timeout_seconds": self._circuit_timeout_seconds,
            "opened_at": self._opened_at,
            "last_failure_time": self._last_failure_time,
            "time_until_half_open": self._time_until_half_open(),
        }
