"""
Unit tests for MetricsRecorder.

Covers the daily aggregate counters, slow-query ledger, popularity ledger,
TTLs and best-effort failure handling.
"""

import json
import logging
import math
from datetime import date

import pytest

from quotawatch.core.exceptions import StoreCircuitOpenError
from quotawatch.modules.performance import (
    ExtractionMethod,
    Intent,
    MetricsRecorder,
    PerformanceSettings,
    RecordOutcome,
    fingerprint,
)

pytestmark = pytest.mark.unit

DAY = date(2024, 1, 1)
DAILY = "perf:daily:2024-01-01"
TIMES = "perf:daily:2024-01-01:times"
SLOW = "perf:slow:2024-01-01"
POPULAR = "perf:popular:2024-01-01"


class TestRecording:
    async def test_fast_query_updates_counters(self, recorder, memory_store, record_factory):
        result = await recorder.record(
            record_factory(method=ExtractionMethod.LLM, intent=Intent.FIND_PEERS)
        )

        assert result.outcome is RecordOutcome.RECORDED
        assert result.failed_steps == ()
        assert result.slow is False
        assert await memory_store.hash_get_all(DAILY) == {
            "total_queries": "1",
            "method_llm": "1",
            "intent_find_peers": "1",
        }
        assert await memory_store.list_range(TIMES, 0, -1) == ["100.0"]
        assert await memory_store.list_range(SLOW, 0, -1) == []

    async def test_individual_record_written(self, recorder, memory_store, record_factory):
        await recorder.record(record_factory(query="dentist near me", user_id="u1"))

        record_keys = [k for k in memory_store.keys() if k.startswith("perf:query:")]
        assert len(record_keys) == 1
        assert record_keys[0].startswith("perf:query:2024-01-01T12:00:00+00:00:")

        payload = json.loads(await memory_store.get(record_keys[0]))
        assert payload["query"] == "dentist near me"
        assert payload["method"] == "regex"
        assert payload["times"]["total"] == 100.0
        assert payload["user_id"] == "u1"

    async def test_slow_query_counted_once_and_pushed_to_front(
        self, recorder, memory_store, record_factory
    ):
        await recorder.record(record_factory(query="first slow", total_time=1200))
        result = await recorder.record(record_factory(query="second slow", total_time=2500))

        assert result.slow is True
        daily = await memory_store.hash_get_all(DAILY)
        assert daily["slow_queries"] == "2"

        ledger = [json.loads(e) for e in await memory_store.list_range(SLOW, 0, -1)]
        assert [e["query"] for e in ledger] == ["second slow", "first slow"]
        assert ledger[0]["time"] == 2500
        assert ledger[0]["method"] == "regex"

    async def test_threshold_is_exclusive(self, recorder, memory_store, record_factory):
        result = await recorder.record(record_factory(total_time=1000))

        assert result.slow is False
        assert "slow_queries" not in await memory_store.hash_get_all(DAILY)

    async def test_slow_ledger_capped(self, memory_store, record_factory):
        recorder = MetricsRecorder(memory_store, PerformanceSettings(max_slow_queries=5))

        for i in range(8):
            await recorder.record(record_factory(query=f"q{i}", total_time=5000))

        ledger = await memory_store.list_range(SLOW, 0, -1)
        assert len(ledger) == 5
        assert json.loads(ledger[0])["query"] == "q7"
        assert (await memory_store.hash_get_all(DAILY))["slow_queries"] == "8"

    async def test_same_query_twice_scores_two(self, recorder, memory_store, record_factory):
        await recorder.record(record_factory(query="Find Plumbers"))
        await recorder.record(record_factory(query="  find   plumbers "))

        ranked = await memory_store.sorted_set_range_descending(POPULAR, 0, -1)
        assert ranked == [(fingerprint("find plumbers"), 2.0)]
        assert await memory_store.get(f"perf:query_text:{fingerprint('find plumbers')}") == (
            "  find   plumbers "
        )

    async def test_day_scoped_keys_get_retention_ttl(self, recorder, memory_store, record_factory):
        await recorder.record(record_factory(total_time=3000))

        for key in (DAILY, TIMES, SLOW, POPULAR):
            assert await memory_store.ttl(key) == 604800

    async def test_unknown_intent_recorded_as_other(self, recorder, memory_store, record_factory):
        await recorder.record(record_factory(intent="find_recipe"))

        assert (await memory_store.hash_get_all(DAILY))["intent_other"] == "1"


class TestBestEffort:
    async def test_all_steps_fail_is_dropped(self, failing_store, record_factory):
        recorder = MetricsRecorder(failing_store)

        result = await recorder.record(record_factory(total_time=1500))

        assert result.outcome is RecordOutcome.DROPPED
        assert len(result.failed_steps) == result.total_steps
        assert "slow_ledger_push" in result.failed_steps

    async def test_one_step_failing_is_partial(self, memory_store, record_factory, mocker):
        mocker.patch.object(
            memory_store, "sorted_set_increment_score", side_effect=RuntimeError("boom")
        )
        recorder = MetricsRecorder(memory_store)

        result = await recorder.record(record_factory())

        assert result.outcome is RecordOutcome.PARTIAL
        assert result.failed_steps == ("popularity_score",)
        assert (await memory_store.hash_get_all(DAILY))["total_queries"] == "1"

    async def test_step_count(self, recorder, record_factory):
        fast = await recorder.record(record_factory(total_time=10))
        slow = await recorder.record(record_factory(total_time=10_000))

        assert slow.total_steps == fast.total_steps + 4

    async def test_circuit_open_step_logs_warning_not_error(
        self, memory_store, record_factory, mocker, caplog
    ):
        mocker.patch.object(
            memory_store,
            "sorted_set_increment_score",
            side_effect=StoreCircuitOpenError("ZINCRBY", retry_after=5),
        )
        recorder = MetricsRecorder(memory_store)

        await recorder.record(record_factory())

        failures = [r for r in caplog.records if r.getMessage() == "Failed to record performance metric"]
        assert [r.levelno for r in failures] == [logging.WARNING]
        assert failures[0].retryable is True

    async def test_unexpected_error_logs_error(self, memory_store, record_factory, mocker, caplog):
        mocker.patch.object(
            memory_store, "sorted_set_increment_score", side_effect=RuntimeError("boom")
        )
        recorder = MetricsRecorder(memory_store)

        await recorder.record(record_factory())

        failures = [r for r in caplog.records if r.getMessage() == "Failed to record performance metric"]
        assert [r.levelno for r in failures] == [logging.ERROR]
        assert failures[0].retryable is False


class TestRecordValidation:
    @pytest.mark.parametrize("value", [math.nan, math.inf, -1.0])
    def test_rejects_bad_total_time(self, record_factory, value):
        with pytest.raises(ValueError):
            record_factory(total_time=value)

    def test_rejects_non_finite_phase_time(self, record_factory):
        with pytest.raises(ValueError):
            record_factory(search_time=math.nan)

    @pytest.mark.parametrize("value", [math.nan, 1.5])
    def test_rejects_bad_confidence(self, record_factory, value):
        with pytest.raises(ValueError):
            record_factory(confidence=value)
