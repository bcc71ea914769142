"""
Accounting Context - quotawatch Composition Root
================================================

Purpose
-------
Build the Accounting Store client and every component that uses it, in
dependency order, and tear them down in reverse.

Responsibilities
----------------
- Initialize ConfigManager (YAML defaults)
- Create the Accounting Store (Redis from `Config`, or an injected store)
- Build the traffic-class registry and `RateLimiter`
- Build `PerformanceSettings`, `MetricsRecorder` and `MetricsAggregator`
- Close the store on shutdown
- Structured lifecycle logging with timing

Non-Responsibilities
--------------------
- Admission decisions (RateLimiter)
- Recording or aggregating telemetry (performance module)
- Serving HTTP or chat traffic

Architecture Notes
------------------
Components never reach a module-level store; they receive the one built
here through their constructors. Tests pass an `InMemoryAccountingStore`.

Initialization Order:
    1. ConfigManager
    2. AccountingStore (+ health probe, non-fatal)
    3. TrafficClassRegistry -> RateLimiter
    4. PerformanceSettings -> MetricsRecorder, MetricsAggregator

Shutdown Order:
    1. AccountingStore.close()
"""

from __future__ import annotations

import time
from dataclasses import asdict
from typing import Any, Dict, Optional

from quotawatch.core.config import Config, ConfigManager
from quotawatch.core.logging.logger import get_logger, get_logging_health
from quotawatch.core.redis.service import RedisAccountingStore
from quotawatch.core.redis.store import AccountingStore
from quotawatch.modules.performance.aggregator import MetricsAggregator
from quotawatch.modules.performance.recorder import MetricsRecorder
from quotawatch.modules.performance.settings import PerformanceSettings
from quotawatch.modules.ratelimit.limiter import RateLimiter
from quotawatch.modules.ratelimit.policies import TrafficClassRegistry

logger = get_logger(__name__)


class AccountingContext:
    """
    Owns the store and the components built on it.

    Usage:
        context = AccountingContext()
        await context.initialize()
        decision = await context.rate_limiter.check_and_consume(attrs, "search")
        ...
        await context.shutdown()

    Or as an async context manager:
        async with AccountingContext(store=InMemoryAccountingStore()) as context:
            ...
    """

    def __init__(
        self,
        store: Optional[AccountingStore] = None,
        registry: Optional[TrafficClassRegistry] = None,
        settings: Optional[PerformanceSettings] = None,
    ) -> None:
        """
        Parameters left as None are built from configuration during
        `initialize()`.
        """
        self._injected_store = store
        self._injected_registry = registry
        self._injected_settings = settings

        self._store: Optional[AccountingStore] = None
        self._rate_limiter: Optional[RateLimiter] = None
        self._recorder: Optional[MetricsRecorder] = None
        self._aggregator: Optional[MetricsAggregator] = None
        self._initialized: bool = False

        logger.debug("AccountingContext created")

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    async def initialize(self) -> None:
        """
        Build all components in dependency order.

        Raises:
            RuntimeError: If already initialized or initialization fails
        """
        if self._initialized:
            raise RuntimeError("AccountingContext already initialized")

        logger.info("=" * 70)
        logger.info("ACCOUNTING CONTEXT INITIALIZATION")
        logger.info("=" * 70)

        start_time = time.perf_counter()

        try:
            step_start = time.perf_counter()
            ConfigManager.initialize()
            logger.info(
                "ConfigManager initialized (%.2fms)",
                (time.perf_counter() - step_start) * 1000,
            )

            step_start = time.perf_counter()
            self._store = self._injected_store or RedisAccountingStore.from_config()
            health = await self._store.health_check()
            if health.connected:
                logger.info(
                    "%s ready (%.2fms)",
                    type(self._store).__name__,
                    (time.perf_counter() - step_start) * 1000,
                    extra={"ping_ms": health.latency_ms},
                )
            else:
                # Limiter fails open and recorder drops; startup continues
                logger.warning(
                    "Accounting store unreachable at startup (non-critical)",
                    extra={"store": type(self._store).__name__, "error": health.error},
                )

            step_start = time.perf_counter()
            registry = self._injected_registry or TrafficClassRegistry.from_config()
            self._rate_limiter = RateLimiter(self._store, registry)
            logger.info(
                "RateLimiter ready (%.2fms)",
                (time.perf_counter() - step_start) * 1000,
                extra={"traffic_classes": registry.names()},
            )

            step_start = time.perf_counter()
            settings = self._injected_settings or PerformanceSettings.from_config()
            self._recorder = MetricsRecorder(self._store, settings)
            self._aggregator = MetricsAggregator(self._store, settings)
            logger.info(
                "Performance telemetry ready (%.2fms)",
                (time.perf_counter() - step_start) * 1000,
            )

            self._initialized = True
            logger.info("=" * 70)
            logger.info("Accounting context initialized successfully")
            logger.info("  Total time: %.2fms", (time.perf_counter() - start_time) * 1000)
            logger.info("=" * 70)

        except Exception as exc:
            logger.critical(
                "Accounting context initialization failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            await self._close_store()
            raise RuntimeError("Failed to initialize accounting context") from exc

    # ========================================================================
    # SHUTDOWN
    # ========================================================================

    async def shutdown(self) -> None:
        """Close the store. Safe to call when not initialized."""
        if not self._initialized:
            logger.warning("AccountingContext not initialized, nothing to shut down")
            return

        logger.info("=" * 70)
        logger.info("ACCOUNTING CONTEXT SHUTDOWN")
        logger.info("=" * 70)

        await self._close_store()

        self._rate_limiter = None
        self._recorder = None
        self._aggregator = None
        self._initialized = False
        logger.info("Accounting context shutdown complete")

    async def _close_store(self) -> None:
        if self._store is None:
            return
        try:
            await self._store.close()
            logger.info("%s closed", type(self._store).__name__)
        except Exception as exc:
            logger.error(
                "Error closing accounting store",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
        finally:
            self._store = None

    async def __aenter__(self) -> "AccountingContext":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    def _require(self, component: Optional[Any], name: str) -> Any:
        if not self._initialized or component is None:
            raise RuntimeError(f"{name} not available: AccountingContext not initialized")
        return component

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def store(self) -> AccountingStore:
        return self._require(self._store, "AccountingStore")

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._require(self._rate_limiter, "RateLimiter")

    @property
    def recorder(self) -> MetricsRecorder:
        return self._require(self._recorder, "MetricsRecorder")

    @property
    def aggregator(self) -> MetricsAggregator:
        return self._require(self._aggregator, "MetricsAggregator")

    async def get_status(self) -> Dict[str, Any]:
        """Health and counters of every component, for diagnostics."""
        if not self._initialized or self._store is None:
            return {"initialized": False}

        health = await self._store.health_check()
        status: Dict[str, Any] = {
            "initialized": True,
            "store": {"type": type(self._store).__name__, **health.to_dict()},
            "rate_limiter": self.rate_limiter.get_status(),
            "config": {
                **Config.get_config_summary(),
                "dynamic": ConfigManager.health_snapshot(),
            },
            "logging": asdict(get_logging_health()),
        }
        if isinstance(self._store, RedisAccountingStore):
            status["store"]["details"] = self._store.get_status()
        return status
