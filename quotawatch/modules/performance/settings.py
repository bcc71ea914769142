"""
Performance telemetry settings.

Configuration Keys
------------------
- performance.slow_query_threshold_ms     : float (default 1000)
- performance.retention_seconds           : int   (default 604800, 7 days)
- performance.max_slow_queries            : int   (default 100)
- performance.max_top_queries             : int   (default 50)
- performance.report_slow_queries         : int   (default 20)
- performance.recording_latency_warn_ms   : float (default 50)
- performance.phase_ratios.extraction     : float (default 0.4)
- performance.phase_ratios.search         : float (default 0.5)
- performance.phase_ratios.format         : float (default 0.1)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from quotawatch.core.config import ConfigManager
from quotawatch.core.config.errors import ConfigValidationError
from quotawatch.core.constants import (
    PERF_MAX_SLOW_QUERIES,
    PERF_MAX_TOP_QUERIES,
    PERF_PHASE_RATIO_EXTRACTION,
    PERF_PHASE_RATIO_FORMAT,
    PERF_PHASE_RATIO_SEARCH,
    PERF_RECORDING_LATENCY_WARN_MS,
    PERF_REPORT_SLOW_QUERIES,
    PERF_RETENTION_SECONDS,
    PERF_SLOW_QUERY_THRESHOLD_MS,
)
from quotawatch.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PerformanceSettings:
    slow_query_threshold_ms: float = PERF_SLOW_QUERY_THRESHOLD_MS
    retention_seconds: int = PERF_RETENTION_SECONDS
    max_slow_queries: int = PERF_MAX_SLOW_QUERIES
    max_top_queries: int = PERF_MAX_TOP_QUERIES
    report_slow_queries: int = PERF_REPORT_SLOW_QUERIES
    recording_latency_warn_ms: float = PERF_RECORDING_LATENCY_WARN_MS
    extraction_ratio: float = PERF_PHASE_RATIO_EXTRACTION
    search_ratio: float = PERF_PHASE_RATIO_SEARCH
    format_ratio: float = PERF_PHASE_RATIO_FORMAT

    def __post_init__(self) -> None:
        if self.slow_query_threshold_ms < 0:
            raise ConfigValidationError("slow_query_threshold_ms must be >= 0")
        for name in ("retention_seconds", "max_slow_queries", "max_top_queries", "report_slow_queries"):
            if getattr(self, name) < 1:
                raise ConfigValidationError(f"{name} must be >= 1")
        for name in ("extraction_ratio", "search_ratio", "format_ratio"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigValidationError(f"{name} must be within [0, 1]")

    @classmethod
    def from_config(cls, config_manager: type[ConfigManager] = ConfigManager) -> "PerformanceSettings":
        """
        Read `performance.*` keys, falling back to defaults per key.

        An invalid combination (e.g. a ratio above 1) is logged and the
        built-in defaults are used instead.
        """

        def number(key: str, default: float, kind: type) -> Any:
            value = config_manager.get(f"performance.{key}", default)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.warning(
                    "Invalid performance setting; using default",
                    extra={"config_key": f"performance.{key}", "default": default},
                )
                return default
            return kind(value)

        try:
            return cls(
                slow_query_threshold_ms=number(
                    "slow_query_threshold_ms", PERF_SLOW_QUERY_THRESHOLD_MS, float
                ),
                retention_seconds=number("retention_seconds", PERF_RETENTION_SECONDS, int),
                max_slow_queries=number("max_slow_queries", PERF_MAX_SLOW_QUERIES, int),
                max_top_queries=number("max_top_queries", PERF_MAX_TOP_QUERIES, int),
                report_slow_queries=number("report_slow_queries", PERF_REPORT_SLOW_QUERIES, int),
                recording_latency_warn_ms=number(
                    "recording_latency_warn_ms", PERF_RECORDING_LATENCY_WARN_MS, float
                ),
                extraction_ratio=number(
                    "phase_ratios.extraction", PERF_PHASE_RATIO_EXTRACTION, float
                ),
                search_ratio=number("phase_ratios.search", PERF_PHASE_RATIO_SEARCH, float),
                format_ratio=number("phase_ratios.format", PERF_PHASE_RATIO_FORMAT, float),
            )
        except ConfigValidationError as exc:
            logger.error(
                "Invalid performance settings; using defaults",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return cls()
