"""
ConfigManager: dynamic, YAML-backed tunables for quotawatch.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values such as the
  traffic-class table, the slow-query threshold and retention windows.
- Back configuration with YAML defaults shipped in `config/`, overlaid with
  runtime overrides supplied by an embedding host or a test.

Responsibilities
----------------
- Load and deep-merge every `*.yaml` / `*.yml` file under the config directory.
- Overlay runtime overrides on top of the YAML defaults.
- Serve reads from an in-memory tree with lightweight read metrics.

Non-Responsibilities
--------------------
- Environment variables and connection settings (see `Config`).
- Validating domain meaning of values (callers such as
  `TrafficClassRegistry` and `PerformanceSettings` validate what they read).

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides are applied with the
  same deep-merge so a partial override never discards sibling keys.
- A malformed YAML file is logged and skipped; it never aborts startup.
- Reads before `initialize()` lazily load defaults from `Config.CONFIG_DIR`.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Union

import yaml

from quotawatch.core.config.config import Config
from quotawatch.core.config.errors import ConfigInitializationError
from quotawatch.core.logging.logger import get_logger

logger = get_logger(__name__)


_MISSING = object()


@dataclass(slots=True)
class ConfigReadMetrics:
    gets: int = 0
    hits: int = 0
    misses: int = 0
    files_loaded: int = 0
    files_failed: int = 0
    overrides_applied: int = 0
    total_get_time_ms: float = 0.0

    def snapshot(self) -> Dict[str, Any]:
        avg = self.total_get_time_ms / self.gets if self.gets else 0.0
        return {
            "gets": self.gets,
            "hits": self.hits,
            "misses": self.misses,
            "files_loaded": self.files_loaded,
            "files_failed": self.files_failed,
            "overrides_applied": self.overrides_applied,
            "avg_get_time_ms": round(avg, 4),
        }


class ConfigManager:
    """
    Dot-notation access to YAML defaults plus runtime overrides.

    Examples
    --------
    >>> ConfigManager.initialize()
    >>> ConfigManager.get("rate_limits.classes.search.max_requests", 30)
    30
    >>> ConfigManager.load_overrides({"performance": {"slow_query_threshold_ms": 500}})
    """

    _tree: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None
    _metrics: ConfigReadMetrics = ConfigReadMetrics()

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, Mapping) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            elif isinstance(value, Mapping):
                target[key] = copy.deepcopy(dict(value))
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        if not config_dir.is_dir():
            raise ConfigInitializationError(
                f"Config path is not a directory: {config_dir}"
            )

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return merged

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                cls._metrics.files_failed += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": relative,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(merged, data)
                cls._metrics.files_loaded += 1
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                cls._metrics.files_failed += 1
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )

        return merged

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Union[str, Path]] = None) -> None:
        """
        Load YAML defaults (idempotent).

        Parameters
        ----------
        config_dir:
            Directory to scan. Defaults to `Config.CONFIG_DIR`.

        Raises
        ------
        ConfigInitializationError
            If `config_dir` exists but is not a directory.
        """
        if cls._initialized:
            return

        start = time.monotonic()
        directory = Path(config_dir) if config_dir is not None else Path(Config.CONFIG_DIR)

        cls._defaults = cls._load_yaml_configs(directory)
        cls._tree = copy.deepcopy(cls._defaults)
        cls._config_dir = directory
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={
                "config_dir": str(directory),
                "yaml_file_count": cls._metrics.files_loaded,
                "top_level_keys": sorted(cls._tree.keys()),
                "latency_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )

    @classmethod
    def load_overrides(cls, overrides: Mapping[str, Any]) -> None:
        """Deep-merge runtime overrides on top of the current tree."""
        if not cls._initialized:
            cls.initialize()

        cls._deep_merge_dict(cls._tree, overrides)
        cls._metrics.overrides_applied += 1
        logger.info(
            "Config overrides applied",
            extra={"override_keys": sorted(overrides.keys())},
        )

    @classmethod
    def reset(cls) -> None:
        """Drop all loaded state; the next read re-initializes from disk."""
        cls._tree = {}
        cls._defaults = {}
        cls._initialized = False
        cls._config_dir = None
        cls._metrics = ConfigReadMetrics()

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. `"performance.retention_seconds"`).
        default:
            Value to return if the key is absent.

        Returns
        -------
        Any
            A deep copy for mappings and lists so callers cannot mutate the
            shared tree; scalars are returned as-is.
        """
        start = time.perf_counter()
        cls._metrics.gets += 1

        if not cls._initialized:
            logger.debug("ConfigManager accessed before initialization; loading defaults")
            cls.initialize()

        try:
            value: Any = cls._tree
            for part in key.split("."):
                if not isinstance(value, dict):
                    value = _MISSING
                    break
                value = value.get(part, _MISSING)
                if value is _MISSING:
                    break

            if value is _MISSING or value is None:
                cls._metrics.misses += 1
                return default

            cls._metrics.hits += 1
            if isinstance(value, (dict, list)):
                return copy.deepcopy(value)
            return value
        finally:
            cls._metrics.total_get_time_ms += (time.perf_counter() - start) * 1000

    @classmethod
    def get_all_keys(cls) -> List[str]:
        if not cls._initialized:
            cls.initialize()
        return sorted(cls._tree.keys())

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        return cls._metrics.snapshot()

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._initialized,
            "config_dir": str(cls._config_dir) if cls._config_dir else None,
            "top_level_keys": sorted(cls._tree.keys()),
            **cls._metrics.snapshot(),
        }


__all__ = ["ConfigManager"]
