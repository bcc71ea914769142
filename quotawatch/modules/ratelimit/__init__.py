"""
Rate limiting domain: identity keys, traffic classes and the limiter.
"""

from quotawatch.modules.ratelimit.identity import (
    IdentitySource,
    RequestAttributes,
    derive_identity_key,
    normalize_phone,
    resolve_subject,
)
from quotawatch.modules.ratelimit.limiter import RateLimiter
from quotawatch.modules.ratelimit.models import (
    RATE_LIMIT_STATUS_CODE,
    RateLimitDecision,
    RateLimitInfo,
)
from quotawatch.modules.ratelimit.policies import (
    DEFAULT_TRAFFIC_CLASSES,
    TrafficClass,
    TrafficClassRegistry,
    UnknownTrafficClassError,
)

__all__ = [
    "IdentitySource",
    "RequestAttributes",
    "derive_identity_key",
    "normalize_phone",
    "resolve_subject",
    "RateLimiter",
    "RateLimitDecision",
    "RateLimitInfo",
    "RATE_LIMIT_STATUS_CODE",
    "TrafficClass",
    "TrafficClassRegistry",
    "UnknownTrafficClassError",
    "DEFAULT_TRAFFIC_CLASSES",
]
