"""
Performance telemetry value types.

- `PerformanceRecord`: one processed query, produced once and never mutated.
- `AggregatedMetrics` / `DailyReport`: read-side views computed from a
  day's accumulated counters, samples and ledgers.
- `RecordResult`: what the recorder managed to write for one record.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ExtractionMethod(str, Enum):
    """How the query pipeline extracted its search parameters."""

    REGEX = "regex"  # direct pattern match
    LLM = "llm"  # model assisted
    HYBRID = "hybrid"
    CACHED = "cached"  # cache hit

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self]


_METHOD_LABELS = {
    ExtractionMethod.REGEX: "Regex Only",
    ExtractionMethod.LLM: "LLM Fallback",
    ExtractionMethod.HYBRID: "Hybrid",
    ExtractionMethod.CACHED: "Cached",
}


class Intent(str, Enum):
    """Classified intent of a query; anything unrecognised is OTHER."""

    FIND_BUSINESS = "find_business"
    FIND_PEERS = "find_peers"
    FIND_SPECIFIC_PERSON = "find_specific_person"
    FIND_ALUMNI_BUSINESS = "find_alumni_business"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> "Intent":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PerformanceRecord:
    """
    Timings and outcome of one processed query.

    Durations are milliseconds. A naive `timestamp` is taken to be UTC.

    Raises
    ------
    ValueError
        On negative durations or a confidence outside [0, 1].
    """

    query: str
    intent: Intent
    extraction_method: ExtractionMethod
    extraction_time: float
    search_time: float
    format_time: float
    total_time: float
    result_count: int
    confidence: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "intent", Intent.coerce(self.intent))
        object.__setattr__(
            self, "extraction_method", ExtractionMethod(self.extraction_method)
        )
        object.__setattr__(self, "timestamp", _as_utc(self.timestamp))

        for name in ("extraction_time", "search_time", "format_time", "total_time"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite number >= 0")
        if self.result_count < 0:
            raise ValueError("result_count must be >= 0")
        if not math.isfinite(self.confidence) or not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be within [0, 1]")

    @property
    def day(self) -> date:
        return self.timestamp.date()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "intent": self.intent.value,
            "method": self.extraction_method.value,
            "times": {
                "total": self.total_time,
                "extraction": self.extraction_time,
                "search": self.search_time,
                "format": self.format_time,
            },
            "results": self.result_count,
            "confidence": self.confidence,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "session_id": self.session_id,
        }


# ════════════════════════════════════════════════════════════════════════
# Recording outcome
# ════════════════════════════════════════════════════════════════════════


class RecordOutcome(str, Enum):
    RECORDED = "recorded"
    PARTIAL = "partial"
    DROPPED = "dropped"


@dataclass(frozen=True)
class RecordResult:
    outcome: RecordOutcome
    total_steps: int
    failed_steps: Tuple[str, ...] = ()
    slow: bool = False
    latency_ms: float = 0.0


# ════════════════════════════════════════════════════════════════════════
# Read side
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AggregatedMetrics:
    """Computed view of one day's Daily Aggregate."""

    date: date
    total_queries: int
    sample_count: int
    avg_total_time: float
    avg_extraction_time: float
    avg_search_time: float
    avg_format_time: float
    p50_time: float
    p95_time: float
    p99_time: float
    method_counts: Dict[ExtractionMethod, int]
    by_intent: Dict[Intent, int]
    slow_query_count: int

    @property
    def time_range(self) -> Tuple[datetime, datetime]:
        start = datetime(self.date.year, self.date.month, self.date.day, tzinfo=timezone.utc)
        end = start.replace(hour=23, minute=59, second=59)
        return start, end

    def method_count(self, method: ExtractionMethod) -> int:
        return self.method_counts.get(method, 0)

    @property
    def regex_usage(self) -> int:
        return self.method_count(ExtractionMethod.REGEX)

    @property
    def llm_usage(self) -> int:
        return self.method_count(ExtractionMethod.LLM)

    @property
    def hybrid_usage(self) -> int:
        return self.method_count(ExtractionMethod.HYBRID)

    @property
    def cached_usage(self) -> int:
        return self.method_count(ExtractionMethod.CACHED)

    def to_dict(self) -> Dict[str, Any]:
        start, end = self.time_range
        return {
            "date": self.date.isoformat(),
            "total_queries": self.total_queries,
            "sample_count": self.sample_count,
            "avg_total_time": round(self.avg_total_time, 2),
            "avg_extraction_time": round(self.avg_extraction_time, 2),
            "avg_search_time": round(self.avg_search_time, 2),
            "avg_format_time": round(self.avg_format_time, 2),
            "p50_time": self.p50_time,
            "p95_time": self.p95_time,
            "p99_time": self.p99_time,
            "method_counts": {m.value: c for m, c in self.method_counts.items()},
            "by_intent": {i.value: c for i, c in self.by_intent.items()},
            "slow_query_count": self.slow_query_count,
            "time_range": {"start": start.isoformat(), "end": end.isoformat()},
        }


@dataclass(frozen=True)
class TopQuery:
    query: str
    count: int
    fingerprint: str


@dataclass(frozen=True)
class SlowQuery:
    query: str
    time_ms: float
    method: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DailyReport:
    date: date
    metrics: AggregatedMetrics
    top_queries: List[TopQuery]
    slow_queries: List[SlowQuery]
    slow_threshold_ms: float

    @property
    def method_distribution(self) -> Dict[ExtractionMethod, int]:
        return {method: self.metrics.method_count(method) for method in ExtractionMethod}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "metrics": self.metrics.to_dict(),
            "top_queries": [
                {"query": q.query, "count": q.count, "fingerprint": q.fingerprint}
                for q in self.top_queries
            ],
            "slow_queries": [
                {
                    "query": q.query,
                    "time": q.time_ms,
                    "method": q.method,
                    "timestamp": q.timestamp.isoformat() if q.timestamp else None,
                }
                for q in self.slow_queries
            ],
            "method_distribution": {m.value: c for m, c in self.method_distribution.items()},
            "slow_threshold_ms": self.slow_threshold_ms,
        }
