"""
Store key layout for performance telemetry.

All day-scoped keys use the UTC calendar date of the record's timestamp.

    perf:query:{iso-timestamp}:{suffix}   individual record (JSON string)
    perf:daily:{date}                     daily aggregate (hash)
    perf:daily:{date}:times               total-time samples (list)
    perf:slow:{date}                      slow-query ledger (list, newest first)
    perf:popular:{date}                   popularity ledger (sorted set)
    perf:query_text:{fingerprint}         fingerprint -> query text (string)
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import date, datetime, timezone
from typing import Optional, Union

from quotawatch.core.constants import PERF_FINGERPRINT_LENGTH, PERF_KEY_PREFIX

FIELD_TOTAL = "total_queries"
FIELD_SLOW = "slow_queries"
METHOD_FIELD_PREFIX = "method_"
INTENT_FIELD_PREFIX = "intent_"

DateLike = Union[date, str, None]


def parse_day(value: DateLike = None) -> date:
    """
    Accept a `date`, a ``YYYY-MM-DD`` string, or None for today (UTC).

    Raises
    ------
    ValueError
        If a string is not a valid ISO calendar date.
    """
    if value is None:
        return datetime.now(timezone.utc).date()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD") from exc


def normalize_query(text: str) -> str:
    return " ".join(text.strip().lower().split())


def fingerprint(text: str, length: int = PERF_FINGERPRINT_LENGTH) -> str:
    """
    Stable identifier for equivalent query texts.

    Case and surrounding/internal whitespace are ignored.

    >>> fingerprint("Find  Doctors") == fingerprint("find doctors ")
    True
    """
    digest = hashlib.sha1(normalize_query(text).encode("utf-8")).hexdigest()
    return digest[:length]


def daily_key(day: date) -> str:
    return f"{PERF_KEY_PREFIX}daily:{day.isoformat()}"


def times_key(day: date) -> str:
    return f"{daily_key(day)}:times"


def slow_key(day: date) -> str:
    return f"{PERF_KEY_PREFIX}slow:{day.isoformat()}"


def popular_key(day: date) -> str:
    return f"{PERF_KEY_PREFIX}popular:{day.isoformat()}"


def query_text_key(query_fingerprint: str) -> str:
    return f"{PERF_KEY_PREFIX}query_text:{query_fingerprint}"


def query_record_key(timestamp: datetime, suffix: Optional[str] = None) -> str:
    suffix = suffix or uuid.uuid4().hex[:8]
    return f"{PERF_KEY_PREFIX}query:{timestamp.isoformat()}:{suffix}"
