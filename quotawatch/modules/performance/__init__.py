"""
Performance telemetry: per-query recording, daily aggregation and reports.
"""

from quotawatch.modules.performance.aggregator import MetricsAggregator
from quotawatch.modules.performance.formatter import format_report
from quotawatch.modules.performance.keys import fingerprint, parse_day
from quotawatch.modules.performance.models import (
    AggregatedMetrics,
    DailyReport,
    ExtractionMethod,
    Intent,
    PerformanceRecord,
    RecordOutcome,
    RecordResult,
    SlowQuery,
    TopQuery,
)
from quotawatch.modules.performance.recorder import MetricsRecorder
from quotawatch.modules.performance.settings import PerformanceSettings

__all__ = [
    "MetricsAggregator",
    "MetricsRecorder",
    "PerformanceSettings",
    "format_report",
    "fingerprint",
    "parse_day",
    "AggregatedMetrics",
    "DailyReport",
    "ExtractionMethod",
    "Intent",
    "PerformanceRecord",
    "RecordOutcome",
    "RecordResult",
    "SlowQuery",
    "TopQuery",
]
