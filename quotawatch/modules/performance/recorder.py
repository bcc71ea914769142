"""
Performance Metrics Recorder
============================

Purpose
-------
Fold one `PerformanceRecord` per processed query into the day's telemetry
in the Accounting Store.

Responsibilities
----------------
- Log a one-line summary of every record, plus a warning for slow queries.
- Write the individual time-stamped record (TTL = retention).
- Increment the Daily Aggregate's total, per-method and per-intent counters.
- Append the total duration to the day's sample list.
- For slow queries: bump the slow counter, push to the slow-query ledger,
  trim it to its cap and refresh its TTL.
- Bump the query's popularity score and refresh the fingerprint -> text map.
- Refresh the TTL of the Daily Aggregate and its sample list.

Non-Responsibilities
--------------------
- Reading or aggregating (see `MetricsAggregator`).
- Retrying failed writes.

Design Decisions
----------------
- Every store step is guarded on its own. A failed step is logged and the
  remaining steps still run; `record()` never raises.
- Counters use atomic increments; lists and the sorted set use append-only
  primitives. No read-modify-write happens here.
- The caller gets a `RecordResult` stating RECORDED, PARTIAL or DROPPED.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from quotawatch.core.exceptions import is_transient_error, should_alert
from quotawatch.core.logging.logger import get_logger
from quotawatch.core.redis.store import AccountingStore
from quotawatch.modules.performance import keys
from quotawatch.modules.performance.models import (
    PerformanceRecord,
    RecordOutcome,
    RecordResult,
)
from quotawatch.modules.performance.settings import PerformanceSettings

logger = get_logger(__name__)

Step = Tuple[str, Callable[[], Awaitable[Any]]]


class MetricsRecorder:
    """
    Best-effort writer of per-query performance telemetry.

    Example
    -------
    >>> recorder = MetricsRecorder(store, PerformanceSettings.from_config())
    >>> result = await recorder.record(record)
    >>> result.outcome
    <RecordOutcome.RECORDED: 'recorded'>
    """

    def __init__(
        self,
        store: AccountingStore,
        settings: Optional[PerformanceSettings] = None,
    ) -> None:
        self._store = store
        self._settings = settings or PerformanceSettings()

    @property
    def settings(self) -> PerformanceSettings:
        return self._settings

    def is_slow(self, record: PerformanceRecord) -> bool:
        return record.total_time > self._settings.slow_query_threshold_ms

    async def record(self, record: PerformanceRecord) -> RecordResult:
        """
        Record one processed query. Never raises.

        Returns
        -------
        RecordResult
            RECORDED when every store step succeeded, DROPPED when none did,
            PARTIAL otherwise.
        """
        start_time = time.monotonic()
        slow = self.is_slow(record)

        self._log_summary(record, slow)

        failed: List[str] = []
        steps = self._plan(record, slow)
        for step_name, operation in steps:
            try:
                await operation()
            except Exception as exc:
                failed.append(step_name)
                logger.log(
                    logging.ERROR if should_alert(exc) else logging.WARNING,
                    "Failed to record performance metric",
                    extra={
                        "step": step_name,
                        "retryable": is_transient_error(exc),
                        "intent": record.intent.value,
                        "method": record.extraction_method.value,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )

        if not failed:
            outcome = RecordOutcome.RECORDED
        elif len(failed) == len(steps):
            outcome = RecordOutcome.DROPPED
        else:
            outcome = RecordOutcome.PARTIAL

        latency_ms = round((time.monotonic() - start_time) * 1000, 2)
        if latency_ms > self._settings.recording_latency_warn_ms:
            logger.warning(
                "High metrics recording latency",
                extra={"latency_ms": latency_ms, "steps": len(steps)},
            )

        return RecordResult(
            outcome=outcome,
            total_steps=len(steps),
            failed_steps=tuple(failed),
            slow=slow,
            latency_ms=latency_ms,
        )

    # ════════════════════════════════════════════════════════════════════
    # Internals
    # ════════════════════════════════════════════════════════════════════

    def _log_summary(self, record: PerformanceRecord, slow: bool) -> None:
        logger.info(
            "Query processed: intent=%s method=%s total=%.0fms "
            "(extraction=%.0fms search=%.0fms format=%.0fms) results=%d confidence=%.2f",
            record.intent.value,
            record.extraction_method.value,
            record.total_time,
            record.extraction_time,
            record.search_time,
            record.format_time,
            record.result_count,
            record.confidence,
            extra={
                "intent": record.intent.value,
                "method": record.extraction_method.value,
                "total_time_ms": record.total_time,
                "result_count": record.result_count,
            },
        )
        if slow:
            logger.warning(
                "Slow query detected",
                extra={
                    "query": record.query[:100],
                    "total_time_ms": record.total_time,
                    "threshold_ms": self._settings.slow_query_threshold_ms,
                    "method": record.extraction_method.value,
                },
            )

    def _plan(self, record: PerformanceRecord, slow: bool) -> List[Step]:
        store = self._store
        settings = self._settings
        day = record.day
        retention = settings.retention_seconds

        daily = keys.daily_key(day)
        times = keys.times_key(day)
        method_field = f"{keys.METHOD_FIELD_PREFIX}{record.extraction_method.value}"
        intent_field = f"{keys.INTENT_FIELD_PREFIX}{record.intent.value}"

        steps: List[Step] = [
            (
                "individual_record",
                lambda: store.set_with_ttl(
                    keys.query_record_key(record.timestamp),
                    json.dumps(record.to_dict()),
                    retention,
                ),
            ),
            ("total_counter", lambda: store.hash_increment_field(daily, keys.FIELD_TOTAL)),
            ("method_counter", lambda: store.hash_increment_field(daily, method_field)),
            ("intent_counter", lambda: store.hash_increment_field(daily, intent_field)),
            ("duration_sample", lambda: store.list_push_left(times, str(record.total_time))),
        ]

        if slow:
            slow_ledger = keys.slow_key(day)
            entry = json.dumps(
                {
                    "query": record.query,
                    "time": record.total_time,
                    "method": record.extraction_method.value,
                    "timestamp": record.timestamp.isoformat(),
                }
            )
            steps.extend(
                [
                    ("slow_counter", lambda: store.hash_increment_field(daily, keys.FIELD_SLOW)),
                    ("slow_ledger_push", lambda: store.list_push_left(slow_ledger, entry)),
                    (
                        "slow_ledger_trim",
                        lambda: store.list_trim(slow_ledger, 0, settings.max_slow_queries - 1),
                    ),
                    ("slow_ledger_ttl", lambda: store.expire(slow_ledger, retention)),
                ]
            )

        popular = keys.popular_key(day)
        query_fingerprint = keys.fingerprint(record.query)
        steps.extend(
            [
                (
                    "popularity_score",
                    lambda: store.sorted_set_increment_score(popular, query_fingerprint, 1),
                ),
                ("popularity_ttl", lambda: store.expire(popular, retention)),
                (
                    "query_text",
                    lambda: store.set_with_ttl(
                        keys.query_text_key(query_fingerprint), record.query, retention
                    ),
                ),
                ("daily_ttl", lambda: store.expire(daily, retention)),
                ("samples_ttl", lambda: store.expire(times, retention)),
            ]
        )
        return steps
