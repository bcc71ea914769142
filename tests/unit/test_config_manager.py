"""
Unit tests for ConfigManager and the performance settings built on it.
"""

import pytest

from quotawatch.core.config import ConfigManager
from quotawatch.core.config.errors import ConfigInitializationError
from quotawatch.modules.performance import PerformanceSettings

pytestmark = pytest.mark.unit


class TestConfigManager:
    def test_loads_and_merges_yaml(self, tmp_path):
        (tmp_path / "a.yaml").write_text("performance:\n  max_top_queries: 10\n")
        (tmp_path / "b.yaml").write_text("performance:\n  report_slow_queries: 5\n")

        ConfigManager.initialize(tmp_path)

        assert ConfigManager.get("performance.max_top_queries") == 10
        assert ConfigManager.get("performance.report_slow_queries") == 5
        assert ConfigManager.get("performance.missing", 42) == 42
        assert ConfigManager.get_metrics()["files_loaded"] == 2

    def test_bad_yaml_is_skipped(self, tmp_path):
        (tmp_path / "good.yaml").write_text("store:\n  metrics:\n    slow_operation_ms: 5\n")
        (tmp_path / "bad.yaml").write_text("store: [unclosed\n")

        ConfigManager.initialize(tmp_path)

        assert ConfigManager.get("store.metrics.slow_operation_ms") == 5
        assert ConfigManager.get_metrics()["files_failed"] == 1

    def test_missing_directory_uses_defaults(self, tmp_path):
        ConfigManager.initialize(tmp_path / "absent")

        assert ConfigManager.get_all_keys() == []

    def test_file_path_rejected(self, tmp_path):
        file_path = tmp_path / "file.yaml"
        file_path.write_text("a: 1\n")

        with pytest.raises(ConfigInitializationError):
            ConfigManager.initialize(file_path)

    def test_returned_mappings_are_copies(self, tmp_path):
        (tmp_path / "a.yaml").write_text("rate_limits:\n  classes:\n    x: {max_requests: 1}\n")
        ConfigManager.initialize(tmp_path)

        classes = ConfigManager.get("rate_limits.classes")
        classes["x"]["max_requests"] = 99

        assert ConfigManager.get("rate_limits.classes.x.max_requests") == 1

    def test_overrides_deep_merge(self, tmp_path):
        (tmp_path / "a.yaml").write_text("performance:\n  max_top_queries: 10\n  retention_seconds: 60\n")
        ConfigManager.initialize(tmp_path)

        ConfigManager.load_overrides({"performance": {"max_top_queries": 3}})

        assert ConfigManager.get("performance.max_top_queries") == 3
        assert ConfigManager.get("performance.retention_seconds") == 60


class TestPerformanceSettings:
    def test_project_yaml_matches_defaults(self):
        assert PerformanceSettings.from_config() == PerformanceSettings()

    def test_overrides_applied(self):
        ConfigManager.initialize()
        ConfigManager.load_overrides(
            {"performance": {"slow_query_threshold_ms": 500, "phase_ratios": {"search": 0.7}}}
        )

        settings = PerformanceSettings.from_config()

        assert settings.slow_query_threshold_ms == 500.0
        assert settings.search_ratio == 0.7
        assert settings.extraction_ratio == 0.4

    def test_non_numeric_value_falls_back(self):
        ConfigManager.initialize()
        ConfigManager.load_overrides({"performance": {"max_top_queries": "lots"}})

        assert PerformanceSettings.from_config().max_top_queries == 50

    def test_invalid_combination_uses_defaults(self):
        ConfigManager.initialize()
        ConfigManager.load_overrides({"performance": {"phase_ratios": {"format": 3}}})

        assert PerformanceSettings.from_config() == PerformanceSettings()
