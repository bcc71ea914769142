"""
Identity key derivation for the rate limiter.

An identity key names one rate-limit subject inside one traffic class:
``rate:{traffic_class}:{subject}``. Derivation is pure: the same request
attributes and traffic class always give the same key, and keys of
different traffic classes never collide because the class name is part of
the key.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from quotawatch.core.constants import RATE_LIMIT_KEY_PREFIX, UNKNOWN_SUBJECT


class IdentitySource(str, Enum):
    """Which request attribute identifies the subject of a traffic class."""

    PHONE = "phone"
    USER = "user"
    IP = "ip"
    CUSTOM = "custom"


@dataclass(frozen=True)
class RequestAttributes:
    """
    Caller-supplied attributes of one inbound request.

    Only the attribute named by the traffic class's identity source is used;
    the rest are ignored.
    """

    phone_number: Optional[str] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    identifier: Optional[str] = None


def normalize_phone(raw: str) -> str:
    """
    Strip a channel prefix and a leading ``+`` from a phone number.

    >>> normalize_phone("whatsapp:+919876543210")
    '919876543210'
    >>> normalize_phone("+1 555 0100")
    '15550100'
    """
    value = raw.strip()
    if ":" in value:
        value = value.split(":", 1)[1]
    value = value.strip().lstrip("+")
    return "".join(value.split())


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_subject(
    identity: Union[str, RequestAttributes],
    source: IdentitySource,
) -> str:
    """
    Pick the subject string for a request.

    A plain string is taken as the subject directly. For `RequestAttributes`
    the traffic class's source decides:

    - PHONE: the normalized phone number
    - USER: the user id, else the normalized phone number
    - IP: the network address
    - CUSTOM: the explicit identifier, else the phone number, else the address

    A missing attribute yields ``"unknown"``, so all anonymous callers of a
    class share one window.
    """
    if isinstance(identity, str):
        return _clean(identity) or UNKNOWN_SUBJECT

    phone = _clean(identity.phone_number)
    phone = normalize_phone(phone) if phone else None

    if source is IdentitySource.PHONE:
        subject = phone
    elif source is IdentitySource.USER:
        subject = _clean(identity.user_id) or phone
    elif source is IdentitySource.IP:
        subject = _clean(identity.ip_address)
    else:
        subject = _clean(identity.identifier) or phone or _clean(identity.ip_address)

    return subject or UNKNOWN_SUBJECT


def derive_identity_key(traffic_class: str, subject: str) -> str:
    """
    Build the store key for a subject within a traffic class.

    >>> derive_identity_key("search", "u1")
    'rate:search:u1'
    """
    return f"{RATE_LIMIT_KEY_PREFIX}:{traffic_class}:{subject}"
