"""
Unit tests for the logging context helpers and formatters.
"""

import json
import logging

import pytest

from quotawatch.core.logging import (
    LogContext,
    clear_log_context,
    get_log_context,
    get_logger,
    get_logging_health,
    set_log_context,
)
from quotawatch.core.logging.logger import ConsoleFormatter, ContextFilter, JSONFormatter

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def _record(**extra) -> logging.LogRecord:
    return logging.getLogger("quotawatch.core.redis.service").makeRecord(
        "quotawatch.core.redis.service",
        logging.WARNING,
        __file__,
        1,
        "Store operation failed: %s",
        ("INCR",),
        None,
        extra=extra or None,
    )


class TestLogContext:
    def test_scoped_to_block(self):
        with LogContext(rate_key="rate:search:u1", traffic_class="search", correlation_id="abc123"):
            context = get_log_context()
            assert context["rate_key"] == "rate:search:u1"
            assert context["correlation_id"] == "abc123"

        assert get_log_context() == {}

    def test_nested_blocks_inherit_and_override(self):
        with LogContext(command="range", report_date="2024-01-01") as outer:
            with LogContext(report_date="2024-01-02"):
                inner = get_log_context()

        assert inner["command"] == "range"
        assert inner["report_date"] == "2024-01-02"
        assert inner["correlation_id"] == outer.context["correlation_id"]

    async def test_async_form_generates_correlation_id(self):
        async with LogContext(command="report") as ctx:
            assert get_log_context()["command"] == "report"
            assert len(ctx.context["correlation_id"]) == 8

        assert get_log_context() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext(user_id="u1")

    def test_set_log_context_merges_fields(self):
        set_log_context(rate_key="rate:auth:10.0.0.1")
        set_log_context(traffic_class="auth", command=None)

        assert get_log_context() == {"rate_key": "rate:auth:10.0.0.1", "traffic_class": "auth"}


class TestContextFilter:
    def test_explicit_extra_survives_bound_context(self):
        record = _record(operation="INCR")

        with LogContext(operation="report", rate_key="rate:search:u1"):
            ContextFilter().filter(record)

        assert record.operation == "INCR"
        assert record.rate_key == "rate:search:u1"

    def test_missing_fields_are_none_without_context(self):
        record = _record()

        ContextFilter().filter(record)

        assert record.rate_key is None
        assert record.correlation_id is None


class TestFormatters:
    def test_json_puts_context_top_level_and_rest_under_extra(self):
        record = _record(operation="INCR", latency_ms=12.5)

        with LogContext(traffic_class="search", correlation_id="abc123"):
            ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Store operation failed: INCR"
        assert payload["operation"] == "INCR"
        assert payload["traffic_class"] == "search"
        assert payload["correlation_id"] == "abc123"
        assert "rate_key" not in payload
        assert payload["extra"] == {"latency_ms": 12.5}

    def test_console_appends_context_tags(self):
        record = _record(rate_key="rate:auth:10.0.0.1")
        ContextFilter().filter(record)

        line = ConsoleFormatter().format(record)

        assert "| WARNING  |" in line
        assert line.endswith("[rate_key=rate:auth:10.0.0.1]")


def test_logging_health_counts_enqueued_records():
    before = get_logging_health()

    get_logger("quotawatch.tests").warning("health check line")

    after = get_logging_health()
    assert after.initialized is True
    assert after.records_enqueued == before.records_enqueued + 1
