"""
quotawatch infrastructure constants.

Purpose
-------
Technical limits, timeouts, thresholds and key prefixes shared by the
Accounting Store client, the rate limiter and the performance telemetry.
Every value here is a default: YAML config (`config/*.yaml`) or environment
variables override the ones that are tunable.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- Grouped by functional area
- No side effects at import time
"""

from __future__ import annotations

from typing import Final

# ============================================================================
# ACCOUNTING STORE
# ============================================================================

STORE_OPERATION_TIMEOUT_MS: Final[int] = 200
STORE_HEALTH_CHECK_TIMEOUT_MS: Final[int] = 1_000

# Operations slower than this are logged by StoreMetrics
STORE_SLOW_OPERATION_MS: Final[int] = 100

# Latency samples retained per operation for percentile summaries
STORE_METRICS_SAMPLE_SIZE: Final[int] = 1_000

# Redis TTL sentinels
TTL_KEY_MISSING: Final[int] = -2
TTL_NO_EXPIRY: Final[int] = -1

# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

CIRCUIT_BREAKER_FAILURE_THRESHOLD: Final[int] = 5
CIRCUIT_BREAKER_RECOVERY_SECONDS: Final[int] = 30
CIRCUIT_BREAKER_SUCCESS_THRESHOLD: Final[int] = 2

# ============================================================================
# RATE LIMITING
# ============================================================================

RATE_LIMIT_KEY_PREFIX: Final[str] = "rate"
RATE_LIMIT_HTTP_STATUS: Final[int] = 429
RATE_LIMIT_ERROR_CODE: Final[str] = "RATE_LIMIT_EXCEEDED"
UNKNOWN_SUBJECT: Final[str] = "unknown"

# ============================================================================
# PERFORMANCE TELEMETRY
# ============================================================================

PERF_KEY_PREFIX: Final[str] = "perf:"
PERF_RETENTION_SECONDS: Final[int] = 7 * 24 * 60 * 60
PERF_SLOW_QUERY_THRESHOLD_MS: Final[float] = 1_000.0
PERF_MAX_SLOW_QUERIES: Final[int] = 100
PERF_MAX_TOP_QUERIES: Final[int] = 50
PERF_REPORT_SLOW_QUERIES: Final[int] = 20
PERF_RECORDING_LATENCY_WARN_MS: Final[float] = 50.0
PERF_FINGERPRINT_LENGTH: Final[int] = 16

# Mean total time split used for the per-phase breakdown in reports
PERF_PHASE_RATIO_EXTRACTION: Final[float] = 0.4
PERF_PHASE_RATIO_SEARCH: Final[float] = 0.5
PERF_PHASE_RATIO_FORMAT: Final[float] = 0.1
