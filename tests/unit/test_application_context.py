"""
Unit tests for AccountingContext and the daily report CLI.
"""

import importlib.util
import json
from pathlib import Path

import pytest

from quotawatch.core.config import Config
from quotawatch.core.infra import AccountingContext
from quotawatch.core.redis.memory import InMemoryAccountingStore

pytestmark = pytest.mark.unit

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "daily_report.py"


@pytest.fixture
def daily_report_cli():
    spec = importlib.util.spec_from_file_location("daily_report", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestAccountingContext:
    async def test_builds_components_on_injected_store(self, memory_store, record_factory):
        async with AccountingContext(store=memory_store) as context:
            assert context.store is memory_store

            decision = await context.rate_limiter.check_and_consume("10.0.0.1", "auth")
            await context.recorder.record(record_factory())
            metrics = await context.aggregator.get_aggregated_metrics("2024-01-01")

            assert decision.remaining == 9
            assert metrics.total_queries == 1
            status = await context.get_status()
            assert status["store"]["connected"] is True
            assert status["config"]["environment"] == "testing"
            assert status["logging"]["initialized"] is True

        assert context.is_initialized is False

    async def test_unreachable_store_does_not_block_startup(self, failing_store):
        context = AccountingContext(store=failing_store)
        await context.initialize()

        decision = await context.rate_limiter.check_and_consume("u1", "search")

        assert decision.degraded is True
        await context.shutdown()

    async def test_double_initialize_rejected(self, memory_store):
        context = AccountingContext(store=memory_store)
        await context.initialize()

        with pytest.raises(RuntimeError):
            await context.initialize()
        await context.shutdown()

    def test_components_require_initialize(self):
        with pytest.raises(RuntimeError):
            AccountingContext().rate_limiter


class TestDailyReportCli:
    async def test_report_text(self, daily_report_cli, memory_store, record_factory, capsys):
        async with AccountingContext(store=memory_store) as context:
            await context.recorder.record(record_factory(total_time=1500))

        args = daily_report_cli.build_parser().parse_args(["report", "--date", "2024-01-01"])
        code = await daily_report_cli.run(args, store=memory_store)

        out = capsys.readouterr().out
        assert code == daily_report_cli.EXIT_OK
        assert "DAILY PERFORMANCE REPORT - 2024-01-01" in out

    async def test_range_json(self, daily_report_cli, memory_store, record_factory, capsys):
        async with AccountingContext(store=memory_store) as context:
            await context.recorder.record(record_factory())

        args = daily_report_cli.build_parser().parse_args(
            ["range", "--start", "2023-12-31", "--end", "2024-01-02", "--json"]
        )
        code = await daily_report_cli.run(args, store=memory_store)

        payload = json.loads(capsys.readouterr().out)
        assert code == daily_report_cli.EXIT_OK
        assert [r["date"] for r in payload] == ["2024-01-01"]

    async def test_report_without_data(self, daily_report_cli, capsys):
        args = daily_report_cli.build_parser().parse_args(["report", "--date", "2024-01-01"])

        code = await daily_report_cli.run(args, store=InMemoryAccountingStore())

        assert code == daily_report_cli.EXIT_NO_DATA

    async def test_clear_refused_in_production(self, daily_report_cli, memory_store, monkeypatch):
        monkeypatch.setattr(Config, "ENVIRONMENT", "production")
        args = daily_report_cli.build_parser().parse_args(["clear", "--date", "2024-01-01"])

        code = await daily_report_cli.run(args, store=memory_store)

        assert code == daily_report_cli.EXIT_ERROR

    async def test_clear(self, daily_report_cli, memory_store, record_factory):
        async with AccountingContext(store=memory_store) as context:
            await context.recorder.record(record_factory())

        args = daily_report_cli.build_parser().parse_args(["clear", "--date", "2024-01-01"])
        code = await daily_report_cli.run(args, store=memory_store)

        assert code == daily_report_cli.EXIT_OK
        assert memory_store.keys() == [k for k in memory_store.keys() if k.startswith("perf:query")]
