"""
Performance Aggregation & Reporting
===================================

Purpose
-------
Turn one day's raw telemetry (Daily Aggregate hash, duration samples,
slow-query and popularity ledgers) into `AggregatedMetrics` and
`DailyReport` views.

Responsibilities
----------------
- Nearest-rank p50/p95/p99 over the sorted duration samples.
- Per-method counts from ``method_*`` fields and per-intent counts by
  scanning ``intent_*`` fields (unknown names fold into ``Intent.OTHER``).
- Top-N popular queries with fingerprints resolved back to text.
- Most recent slow queries, skipping malformed ledger entries.
- Inclusive date-range reports and per-day cleanup.

Design Decisions
----------------
- "No data" (absent or zero total) returns None, never a zero-filled view.
- Store failures are logged and surface as None or an empty list; they
  never raise to the caller. Invalid dates are caller errors and raise
  `ValueError`.
- Per-phase averages are fixed proportions of the mean total time. The
  recorder keeps no per-phase samples, so these are estimates.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from quotawatch.core.exceptions import StoreError
from quotawatch.core.logging.logger import get_logger
from quotawatch.core.redis.store import AccountingStore
from quotawatch.core.stats import nearest_rank_percentile
from quotawatch.modules.performance import keys
from quotawatch.modules.performance.keys import DateLike, parse_day
from quotawatch.modules.performance.models import (
    AggregatedMetrics,
    DailyReport,
    ExtractionMethod,
    Intent,
    SlowQuery,
    TopQuery,
)
from quotawatch.modules.performance.settings import PerformanceSettings

logger = get_logger(__name__)

UNKNOWN_QUERY_TEXT = "Unknown"


def _to_int(value: Optional[str]) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


def _parse_samples(raw: List[str]) -> List[float]:
    samples: List[float] = []
    for item in raw:
        try:
            value = float(item)
        except ValueError:
            value = math.nan
        if not math.isfinite(value) or value < 0:
            logger.warning("Skipping malformed duration sample", extra={"sample": item})
            continue
        samples.append(value)
    samples.sort()
    return samples


def _parse_slow_entry(raw: str) -> Optional[SlowQuery]:
    try:
        data = json.loads(raw)
        timestamp = data.get("timestamp")
        return SlowQuery(
            query=str(data["query"]),
            time_ms=float(data["time"]),
            method=data.get("method"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        )
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.warning(
            "Skipping malformed slow query entry",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        return None


class MetricsAggregator:
    """
    Read-side view over recorded performance telemetry.

    Example
    -------
    >>> aggregator = MetricsAggregator(store)
    >>> report = await aggregator.generate_daily_report("2024-01-01")
    >>> print(format_report(report)) if report else print("no data")
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

    # ════════════════════════════════════════════════════════════════════
    # Aggregation
    # ════════════════════════════════════════════════════════════════════

    async def get_aggregated_metrics(self, day: DateLike = None) -> Optional[AggregatedMetrics]:
        """
        Aggregate one UTC calendar day.

        Parameters
        ----------
        day:
            `date`, ``YYYY-MM-DD`` string, or None for today (UTC).

        Returns
        -------
        AggregatedMetrics or None
            None when the day has no recorded queries or the store failed.

        Raises
        ------
        ValueError
            If `day` is not a valid date.
        """
        target = parse_day(day)

        try:
            data = await self._store.hash_get_all(keys.daily_key(target))
            total = _to_int(data.get(keys.FIELD_TOTAL))
            if total <= 0:
                return None
            raw_samples = await self._store.list_range(keys.times_key(target), 0, -1)
        except StoreError as exc:
            logger.error(
                "Failed to read daily performance metrics",
                extra={
                    "report_date": target.isoformat(),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return None

        samples = _parse_samples(raw_samples)
        avg_total = sum(samples) / len(samples) if samples else 0.0

        method_counts: Dict[ExtractionMethod, int] = {
            method: _to_int(data.get(f"{keys.METHOD_FIELD_PREFIX}{method.value}"))
            for method in ExtractionMethod
        }

        by_intent: Dict[Intent, int] = {}
        for field_name, value in data.items():
            if not field_name.startswith(keys.INTENT_FIELD_PREFIX):
                continue
            intent = Intent.coerce(field_name[len(keys.INTENT_FIELD_PREFIX):])
            by_intent[intent] = by_intent.get(intent, 0) + _to_int(value)

        return AggregatedMetrics(
            date=target,
            total_queries=total,
            sample_count=len(samples),
            avg_total_time=avg_total,
            avg_extraction_time=avg_total * self._settings.extraction_ratio,
            avg_search_time=avg_total * self._settings.search_ratio,
            avg_format_time=avg_total * self._settings.format_ratio,
            p50_time=nearest_rank_percentile(samples, 50),
            p95_time=nearest_rank_percentile(samples, 95),
            p99_time=nearest_rank_percentile(samples, 99),
            method_counts=method_counts,
            by_intent=by_intent,
            slow_query_count=_to_int(data.get(keys.FIELD_SLOW)),
        )

    # ════════════════════════════════════════════════════════════════════
    # Reports
    # ════════════════════════════════════════════════════════════════════

    async def generate_daily_report(self, day: DateLike = None) -> Optional[DailyReport]:
        """
        Aggregated metrics plus top and slow queries for one day.

        Returns None when the day has no data. A failure reading either
        ledger yields an empty list for that section only.
        """
        metrics = await self.get_aggregated_metrics(day)
        if metrics is None:
            return None

        return DailyReport(
            date=metrics.date,
            metrics=metrics,
            top_queries=await self._top_queries(metrics.date),
            slow_queries=await self._slow_queries(metrics.date),
            slow_threshold_ms=self._settings.slow_query_threshold_ms,
        )

    async def _top_queries(self, day: date) -> List[TopQuery]:
        try:
            ranked = await self._store.sorted_set_range_descending(
                keys.popular_key(day), 0, self._settings.max_top_queries - 1
            )
        except StoreError as exc:
            logger.warning(
                "Failed to read popular queries (non-critical)",
                extra={"report_date": day.isoformat(), "error": str(exc), "error_type": type(exc).__name__},
            )
            return []

        top: List[TopQuery] = []
        for member, score in ranked:
            try:
                text = await self._store.get(keys.query_text_key(member))
            except StoreError as exc:
                logger.warning(
                    "Failed to resolve query text (non-critical)",
                    extra={"fingerprint": member, "error": str(exc), "error_type": type(exc).__name__},
                )
                text = None
            top.append(TopQuery(query=text or UNKNOWN_QUERY_TEXT, count=int(score), fingerprint=member))
        return top

    async def _slow_queries(self, day: date) -> List[SlowQuery]:
        try:
            raw = await self._store.list_range(
                keys.slow_key(day), 0, self._settings.report_slow_queries - 1
            )
        except StoreError as exc:
            logger.warning(
                "Failed to read slow queries (non-critical)",
                extra={"report_date": day.isoformat(), "error": str(exc), "error_type": type(exc).__name__},
            )
            return []

        parsed = (_parse_slow_entry(entry) for entry in raw)
        return [entry for entry in parsed if entry is not None]

    async def get_metrics_for_range(self, start: DateLike, end: DateLike) -> List[DailyReport]:
        """
        Daily reports for every day in ``[start, end]`` that has data.

        Returns an empty list when `start` is after `end`.
        """
        first = parse_day(start)
        last = parse_day(end)

        reports: List[DailyReport] = []
        current = first
        while current <= last:
            report = await self.generate_daily_report(current)
            if report is not None:
                reports.append(report)
            current += timedelta(days=1)
        return reports

    # ════════════════════════════════════════════════════════════════════
    # Administration
    # ════════════════════════════════════════════════════════════════════

    async def clear_metrics(self, day: DateLike = None) -> bool:
        """
        Delete one day's aggregate, samples and ledgers. For test isolation.

        Individual records and fingerprint text mappings are left to expire.
        Returns False if the store failed.
        """
        target = parse_day(day)
        try:
            deleted = await self._store.delete(
                keys.daily_key(target),
                keys.times_key(target),
                keys.slow_key(target),
                keys.popular_key(target),
            )
        except StoreError as exc:
            logger.error(
                "Failed to clear performance metrics",
                extra={"report_date": target.isoformat(), "error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        logger.info(
            "Performance metrics cleared",
            extra={"report_date": target.isoformat(), "keys_deleted": deleted},
        )
        return True
