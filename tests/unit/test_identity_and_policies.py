"""
Unit tests for identity keys and traffic-class configuration.
"""

import pytest

from quotawatch.core.config import ConfigManager
from quotawatch.core.config.errors import ConfigValidationError
from quotawatch.modules.ratelimit import (
    DEFAULT_TRAFFIC_CLASSES,
    IdentitySource,
    RequestAttributes,
    TrafficClass,
    TrafficClassRegistry,
    UnknownTrafficClassError,
    derive_identity_key,
    normalize_phone,
    resolve_subject,
)

pytestmark = pytest.mark.unit


class TestIdentity:
    """Subject resolution and key derivation."""

    def test_identity_key_format(self):
        assert derive_identity_key("search", "u1") == "rate:search:u1"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("whatsapp:+919876543210", "919876543210"),
            ("+15550100", "15550100"),
            ("15550100", "15550100"),
            (" sms:+1 555 0100 ", "15550100"),
        ],
    )
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_plain_string_is_subject(self):
        assert resolve_subject("  user1 ", IdentitySource.IP) == "user1"

    def test_blank_string_is_unknown(self):
        assert resolve_subject("   ", IdentitySource.USER) == "unknown"

    def test_user_source_falls_back_to_phone(self):
        attrs = RequestAttributes(phone_number="whatsapp:+15550100")

        assert resolve_subject(attrs, IdentitySource.USER) == "15550100"
        assert resolve_subject(
            RequestAttributes(user_id="u-7", phone_number="+1"), IdentitySource.USER
        ) == "u-7"

    def test_missing_attribute_is_unknown(self):
        attrs = RequestAttributes(user_id="u-7")

        assert resolve_subject(attrs, IdentitySource.IP) == "unknown"
        assert resolve_subject(attrs, IdentitySource.PHONE) == "unknown"

    def test_custom_source_precedence(self):
        assert resolve_subject(
            RequestAttributes(identifier="tenant-1", ip_address="10.0.0.1"),
            IdentitySource.CUSTOM,
        ) == "tenant-1"
        assert resolve_subject(
            RequestAttributes(ip_address="10.0.0.1"), IdentitySource.CUSTOM
        ) == "10.0.0.1"


class TestTrafficClasses:
    """Defaults, validation and config overlay."""

    def test_defaults(self):
        assert DEFAULT_TRAFFIC_CLASSES["whatsapp"].max_requests == 50
        assert DEFAULT_TRAFFIC_CLASSES["whatsapp"].window_seconds == 3600
        assert DEFAULT_TRAFFIC_CLASSES["search"].max_requests == 30
        assert DEFAULT_TRAFFIC_CLASSES["search"].identity_source is IdentitySource.USER
        assert DEFAULT_TRAFFIC_CLASSES["auth"].max_requests == 10
        assert DEFAULT_TRAFFIC_CLASSES["auth"].window_seconds == 900
        assert DEFAULT_TRAFFIC_CLASSES["global"].max_requests == 1000

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "", "window_seconds": 10, "max_requests": 1},
            {"name": "a:b", "window_seconds": 10, "max_requests": 1},
            {"name": "x", "window_seconds": 0, "max_requests": 1},
            {"name": "x", "window_seconds": 10, "max_requests": 0},
            {"name": "x", "window_seconds": 10, "max_requests": True},
        ],
    )
    def test_invalid_class_rejected(self, kwargs):
        with pytest.raises(ConfigValidationError):
            TrafficClass(**kwargs)

    def test_registry_custom_and_lookup(self):
        registry = TrafficClassRegistry()
        registry.custom("export", max_requests=5, window_seconds=60)

        assert "export" in registry
        assert registry.get("export").identity_source is IdentitySource.CUSTOM
        assert len(registry) == 5

        with pytest.raises(UnknownTrafficClassError):
            registry.get("missing")

    def test_from_config_reads_yaml_defaults(self):
        registry = TrafficClassRegistry.from_config()

        assert registry.names() == ["auth", "global", "search", "whatsapp"]
        assert registry.get("auth").window_seconds == 900

    def test_from_config_overlays_and_skips_invalid(self):
        ConfigManager.initialize()
        ConfigManager.load_overrides(
            {
                "rate_limits": {
                    "classes": {
                        "search": {"max_requests": 5},
                        "broken": {"window_seconds": -1, "max_requests": 3},
                        "upload": {
                            "window_seconds": 60,
                            "max_requests": 2,
                            "identity_source": "user",
                        },
                    }
                }
            }
        )

        registry = TrafficClassRegistry.from_config()

        assert registry.get("search").max_requests == 5
        assert registry.get("search").window_seconds == 3600
        assert registry.get("upload").identity_source is IdentitySource.USER
        assert "broken" not in registry
