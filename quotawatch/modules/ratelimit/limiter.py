"""
Fixed-window rate limiter.

Purpose
-------
Admit or reject one request per (identity, traffic class) pair, using a
string counter with a TTL in the Accounting Store.

Algorithm
---------
1. Derive the identity key ``rate:{class}:{subject}``.
2. GET the counter (absent counts as 0).
3. If count >= max_requests: read the TTL, reject with
   ``retry_after_seconds = ceil(ttl)``. Rejected requests are not counted.
4. Otherwise INCR; if the new value is 1 this request opened the window,
   so EXPIRE the key to the window length. Admit with
   ``remaining = max(0, max_requests - new_count)``.

Properties
----------
- Steps 2-4 are not one atomic transaction. k concurrent requests that all
  read ``max_requests - 1`` are all admitted, so a window can admit up to
  k - 1 requests beyond the ceiling. This is an accepted approximation of
  the fixed-window design.
- A counter left without expiry (process died between INCR and EXPIRE) is
  healed on the next rejection, which re-applies the window TTL.
- On the admit path `reset_at` is ``now + window``; it is exact only for
  the request that opened the window.

Failure Policy
--------------
Any store failure fails OPEN: the request is admitted with
``degraded=True``, the error is logged, and no further store call is made
for that request. With ``RATE_LIMIT_ENABLED=false`` every request is
admitted without touching the store.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union

from quotawatch.core.config import Config
from quotawatch.core.constants import TTL_KEY_MISSING, TTL_NO_EXPIRY
from quotawatch.core.exceptions import (
    RateLimitExceededError,
    StoreError,
    is_transient_error,
    should_alert,
)
from quotawatch.core.logging.logger import get_logger
from quotawatch.core.redis.store import AccountingStore
from quotawatch.modules.ratelimit.identity import (
    RequestAttributes,
    derive_identity_key,
    resolve_subject,
)
from quotawatch.modules.ratelimit.models import RateLimitDecision, RateLimitInfo
from quotawatch.modules.ratelimit.policies import TrafficClass, TrafficClassRegistry

logger = get_logger(__name__)

Identity = Union[str, RequestAttributes]


class RateLimiter:
    """
    Per-identity fixed-window admission control.

    Example
    -------
    >>> limiter = RateLimiter(store, TrafficClassRegistry.from_config())
    >>> decision = await limiter.check_and_consume(
    ...     RequestAttributes(phone_number="whatsapp:+15550100"), "whatsapp"
    ... )
    >>> if not decision.admitted:
    ...     return 429, decision.headers(), decision.rejection_body()
    """

    def __init__(
        self,
        store: AccountingStore,
        registry: Optional[TrafficClassRegistry] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._registry = registry or TrafficClassRegistry()
        self._enabled = Config.RATE_LIMIT_ENABLED if enabled is None else enabled
        self._clock = clock
        self._counters: Dict[str, int] = {
            "checks": 0,
            "admitted": 0,
            "rejected": 0,
            "degraded": 0,
            "bypassed": 0,
        }

        logger.debug(
            "RateLimiter initialized",
            extra={"enabled": self._enabled, "traffic_classes": self._registry.names()},
        )

    @property
    def registry(self) -> TrafficClassRegistry:
        return self._registry

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _key_for(self, identity: Identity, policy: TrafficClass) -> str:
        return derive_identity_key(policy.name, resolve_subject(identity, policy.identity_source))

    # ════════════════════════════════════════════════════════════════════
    # Admission
    # ════════════════════════════════════════════════════════════════════

    async def check_and_consume(
        self,
        identity: Identity,
        traffic_class: Union[str, TrafficClass],
    ) -> RateLimitDecision:
        """
        Decide whether a request may proceed, consuming one unit if so.

        Parameters
        ----------
        identity:
            A subject string, or the request attributes from which the
            traffic class derives its subject.
        traffic_class:
            Registered class name or a `TrafficClass` instance.

        Returns
        -------
        RateLimitDecision
            Never raises for store failures (fail-open).

        Raises
        ------
        UnknownTrafficClassError
            If `traffic_class` names no registered class.
        """
        policy = self._registry.resolve(traffic_class)
        key = self._key_for(identity, policy)
        now = self._now()
        self._counters["checks"] += 1

        if not self._enabled:
            self._counters["bypassed"] += 1
            return self._open_decision(policy, key, now, degraded=False)

        start_time = time.monotonic()
        try:
            raw_count = await self._store.get(key)
            count = int(raw_count) if raw_count else 0

            if count >= policy.max_requests:
                ttl = await self._store.ttl(key)
                if ttl == TTL_NO_EXPIRY:
                    await self._store.expire(key, policy.window_seconds)
                    logger.warning(
                        "Rate limit counter had no expiry; window TTL re-applied",
                        extra={"rate_key": key, "traffic_class": policy.name},
                    )
                    ttl = policy.window_seconds
                elif ttl == TTL_KEY_MISSING:
                    ttl = 0

                retry_after = max(1, math.ceil(ttl))
                decision = RateLimitDecision(
                    admitted=False,
                    traffic_class=policy.name,
                    identity_key=key,
                    limit=policy.max_requests,
                    remaining=0,
                    reset_at=now + timedelta(seconds=retry_after),
                    window_seconds=policy.window_seconds,
                    retry_after_seconds=retry_after,
                    message=policy.message,
                )
                self._counters["rejected"] += 1
                logger.info(
                    "Rate limit blocked",
                    extra={
                        "rate_key": key,
                        "traffic_class": policy.name,
                        "current": count,
                        "limit": policy.max_requests,
                        "retry_after_seconds": retry_after,
                        "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                    },
                )
                return decision

            new_count = await self._store.increment(key)
            if new_count == 1:
                await self._store.expire(key, policy.window_seconds)

        except Exception as exc:
            self._counters["degraded"] += 1
            is_store_error = isinstance(exc, StoreError)
            logger.log(
                logging.ERROR if should_alert(exc) else logging.WARNING,
                "Rate limit check failed; admitting request (fail-open)",
                extra={
                    "retryable": is_transient_error(exc),
                    "rate_key": key,
                    "traffic_class": policy.name,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=not is_store_error,
            )
            return self._open_decision(policy, key, now, degraded=True)

        self._counters["admitted"] += 1
        remaining = max(0, policy.max_requests - new_count)
        logger.debug(
            "Rate limit allowed",
            extra={
                "rate_key": key,
                "traffic_class": policy.name,
                "current": new_count,
                "limit": policy.max_requests,
                "remaining": remaining,
                "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
            },
        )
        return RateLimitDecision(
            admitted=True,
            traffic_class=policy.name,
            identity_key=key,
            limit=policy.max_requests,
            remaining=remaining,
            reset_at=now + timedelta(seconds=policy.window_seconds),
            window_seconds=policy.window_seconds,
            message=policy.message,
        )

    def _open_decision(
        self,
        policy: TrafficClass,
        key: str,
        now: datetime,
        degraded: bool,
    ) -> RateLimitDecision:
        return RateLimitDecision(
            admitted=True,
            traffic_class=policy.name,
            identity_key=key,
            limit=policy.max_requests,
            remaining=policy.max_requests,
            reset_at=now + timedelta(seconds=policy.window_seconds),
            window_seconds=policy.window_seconds,
            degraded=degraded,
            message=policy.message,
        )

    async def check_or_raise(
        self,
        identity: Identity,
        traffic_class: Union[str, TrafficClass],
    ) -> RateLimitDecision:
        """
        `check_and_consume` for callers that prefer exception flow.

        Raises
        ------
        RateLimitExceededError
            If the request is rejected.
        """
        decision = await self.check_and_consume(identity, traffic_class)
        if decision.rejected:
            raise RateLimitExceededError(
                traffic_class=decision.traffic_class,
                limit=decision.limit,
                retry_after=decision.retry_after_seconds or 1,
                window_seconds=decision.window_seconds,
                message=decision.message or None,
            )
        return decision

    # ════════════════════════════════════════════════════════════════════
    # Inspection & administration
    # ════════════════════════════════════════════════════════════════════

    async def get_info(
        self,
        identity: Identity,
        traffic_class: Union[str, TrafficClass],
    ) -> Optional[RateLimitInfo]:
        """
        Current window of a subject without consuming quota.

        Returns None when the store is unavailable.
        """
        policy = self._registry.resolve(traffic_class)
        key = self._key_for(identity, policy)

        try:
            raw_count = await self._store.get(key)
            ttl = await self._store.ttl(key)
        except StoreError as exc:
            logger.error(
                "Error getting rate limit info",
                extra={
                    "rate_key": key,
                    "traffic_class": policy.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return None

        current = int(raw_count) if raw_count else 0
        reset_at = self._now() + timedelta(seconds=ttl) if ttl > 0 else None
        return RateLimitInfo(
            identity_key=key,
            limit=policy.max_requests,
            current=current,
            remaining=max(0, policy.max_requests - current),
            reset_at=reset_at,
        )

    async def reset(
        self,
        identity: Identity,
        traffic_class: Union[str, TrafficClass],
    ) -> bool:
        """
        Drop a subject's window. For administrative and test use.

        Returns True if a window existed and was removed.
        """
        policy = self._registry.resolve(traffic_class)
        key = self._key_for(identity, policy)

        try:
            deleted = await self._store.delete(key)
        except StoreError as exc:
            logger.error(
                "Failed to reset rate limit",
                extra={
                    "rate_key": key,
                    "traffic_class": policy.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

        logger.info(
            "Rate limit reset",
            extra={"rate_key": key, "traffic_class": policy.name, "existed": bool(deleted)},
        )
        return bool(deleted)

    def get_status(self) -> Dict[str, Any]:
        """Configuration and decision counters since start."""
        return {
            "enabled": self._enabled,
            "traffic_classes": {tc.name: tc.to_dict() for tc in self._registry},
            "counters": dict(self._counters),
        }
