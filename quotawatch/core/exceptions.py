"""
Infrastructure exceptions for quotawatch.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
Accounting Store failures, timeouts, an open circuit breaker, and the
optional exception-flow form of a rate-limit rejection.

Design Notes
------------
- All infrastructure exceptions inherit from `QuotawatchInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried by the caller
  - `error_code`: short, stable identifier for programmatic use
- Quota exhaustion is a normal outcome (a decision with `admitted=False`),
  not an error. `RateLimitExceededError` exists only for callers that opt
  into exception flow through `RateLimiter.check_or_raise`.
- Helper functions (`is_transient_error`, `get_error_severity`, `should_alert`)
  centralize common exception handling patterns.

Hierarchy
---------
QuotawatchInfrastructureException
├── StoreError
│   └── StoreUnavailableError
│       ├── StoreTimeoutError
│       └── StoreCircuitOpenError
└── RateLimitExceededError
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning (e.g., quota exhausted)
    INFO = "info"  # Normal operation
    WARNING = "warning"  # Concerning but handled (e.g., fail-open)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class QuotawatchInfrastructureException(Exception):
    """
    Base exception for all quotawatch infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise QuotawatchInfrastructureException(
        ...     "Store unreachable",
        ...     {"host": "localhost", "port": 6379}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


# ════════════════════════════════════════════════════════════════════════
# Accounting Store
# ════════════════════════════════════════════════════════════════════════


class StoreError(QuotawatchInfrastructureException):
    """
    Raised when an Accounting Store operation fails.

    Args:
        operation: Name of the store operation (e.g. "increment")
        key: The key involved, when there is one
        original_error: The underlying client exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True
    ERROR_CODE = "STORE_ERROR"

    def __init__(
        self,
        operation: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        message: Optional[str] = None,
    ) -> None:
        self.operation = operation
        self.key = key
        self.original_error = original_error
        reason = message or (str(original_error) if original_error else "operation failed")
        super().__init__(
            f"Store error during {operation}: {reason}",
            details={
                "operation": operation,
                "key": key,
                "error": str(original_error) if original_error else None,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code=self.ERROR_CODE,
        )


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached or rejects the connection."""

    ERROR_CODE = "STORE_UNAVAILABLE"


class StoreTimeoutError(StoreUnavailableError):
    """
    Raised when a store operation exceeds its bounded timeout.

    Args:
        operation: Name of the store operation
        key: The key involved, when there is one
        timeout_ms: The timeout that was exceeded
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    ERROR_CODE = "STORE_TIMEOUT"

    def __init__(
        self, operation: str, key: Optional[str] = None, timeout_ms: float = 0.0
    ) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            operation,
            key=key,
            message=f"timed out after {timeout_ms:.0f}ms",
        )
        self.details["timeout_ms"] = timeout_ms


class StoreCircuitOpenError(StoreUnavailableError):
    """
    Raised when the store circuit breaker is open and calls fail fast.

    Args:
        operation: Name of the store operation that was refused
        retry_after: Seconds until the circuit allows a probe
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    ERROR_CODE = "STORE_CIRCUIT_OPEN"

    def __init__(self, operation: str, retry_after: float = 0.0) -> None:
        self.retry_after = retry_after
        super().__init__(
            operation,
            message=f"circuit breaker open, retry after {retry_after:.1f}s",
        )
        self.details["retry_after"] = retry_after


# ════════════════════════════════════════════════════════════════════════
# Rate limiting
# ════════════════════════════════════════════════════════════════════════


class RateLimitExceededError(QuotawatchInfrastructureException):
    """
    Raised by `RateLimiter.check_or_raise` when a request is rejected.

    Args:
        traffic_class: Name of the traffic class that was exhausted
        limit: Maximum requests per window
        retry_after: Whole seconds until the window resets
        window_seconds: Window length
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        traffic_class: str,
        limit: int,
        retry_after: int,
        window_seconds: int,
        message: Optional[str] = None,
    ) -> None:
        self.traffic_class = traffic_class
        self.limit = limit
        self.retry_after = retry_after
        self.window_seconds = window_seconds
        super().__init__(
            message or f"Rate limit exceeded for {traffic_class}",
            details={
                "traffic_class": traffic_class,
                "limit": limit,
                "retry_after": retry_after,
                "window_seconds": window_seconds,
            },
            error_code="RATE_LIMIT_EXCEEDED",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: BaseException) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, QuotawatchInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Get the severity level of an exception for logging."""
    if isinstance(exc, QuotawatchInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """True if severity is ERROR or CRITICAL."""
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
