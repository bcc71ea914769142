"""
Rate limiter result types.

`RateLimitDecision` is the value every admission check returns. It carries
everything a caller-facing layer needs to answer the request: the verdict,
the quota ceiling, the remaining quota, when the window resets, and (on
rejection) how long to wait. Rendering to headers and to a JSON rejection
body lives here so every surface produces the same shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from quotawatch.core.constants import RATE_LIMIT_ERROR_CODE, RATE_LIMIT_HTTP_STATUS

RATE_LIMIT_STATUS_CODE = RATE_LIMIT_HTTP_STATUS


def format_instant(value: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of one `check_and_consume` call.

    Attributes
    ----------
    admitted:
        Whether the request may proceed.
    traffic_class:
        Name of the traffic class that was checked.
    identity_key:
        The store key of the subject (``rate:{class}:{subject}``).
    limit:
        Maximum requests per window.
    remaining:
        Requests left in the current window (0 when rejected).
    reset_at:
        When the current window is expected to end.
    window_seconds:
        Window length of the traffic class.
    retry_after_seconds:
        Whole seconds to wait; set only when rejected.
    degraded:
        True when the decision was made without the store (fail-open).
    message:
        Rejection message of the traffic class.
    """

    admitted: bool
    traffic_class: str
    identity_key: str
    limit: int
    remaining: int
    reset_at: datetime
    window_seconds: int
    retry_after_seconds: Optional[int] = None
    degraded: bool = False
    message: str = ""

    @property
    def rejected(self) -> bool:
        return not self.admitted

    def headers(self) -> Dict[str, str]:
        """Standard rate-limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": format_instant(self.reset_at),
        }
        if self.rejected and self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers

    def rejection_body(self) -> Dict[str, Any]:
        """JSON body for a 429 response."""
        return {
            "success": False,
            "error": {
                "code": RATE_LIMIT_ERROR_CODE,
                "message": self.message,
                "retryAfter": self.retry_after_seconds,
                "limit": self.limit,
                "windowSeconds": self.window_seconds,
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admitted": self.admitted,
            "traffic_class": self.traffic_class,
            "identity_key": self.identity_key,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": format_instant(self.reset_at),
            "window_seconds": self.window_seconds,
            "retry_after_seconds": self.retry_after_seconds,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class RateLimitInfo:
    """Read-only view of a subject's current window."""

    identity_key: str
    limit: int
    current: int
    remaining: int
    reset_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity_key": self.identity_key,
            "limit": self.limit,
            "current": self.current,
            "remaining": self.remaining,
            "reset_at": format_instant(self.reset_at) if self.reset_at else None,
        }
