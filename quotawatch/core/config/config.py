"""
Static configuration management for quotawatch.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles non-dynamic configuration that is set at process startup: where the
Accounting Store lives, how long a store call may take, and how logging is
emitted.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Track which values came from the environment versus defaults

Non-Responsibilities
--------------------
- Traffic-class and telemetry tunables (handled by ConfigManager / YAML)
- Runtime configuration changes (restart or call `Config.load()`)
- Secrets management (use environment variables)

Architecture Notes
------------------
- Class-level attributes, no instantiation
- Auto-loads on module import via Config.validate()
- Metrics track which values came from environment vs defaults
- Directory paths are relative to the project root for portability

Environment Variables
---------------------
- ENVIRONMENT: development | testing | staging | production (default: development)
- DEBUG: Debug mode flag (default: False)
- LOG_LEVEL: Logging level (default: INFO)
- LOG_JSON: Force JSON console output (default: production only)
- LOG_TO_FILE: Enable the rotating JSON file handler (default: True)
- REDIS_URL: Accounting Store connection string (default: localhost)
- REDIS_PASSWORD: Optional Redis password
- REDIS_MAX_CONNECTIONS: Pool size (default: 50)
- REDIS_OPERATION_TIMEOUT_MS: Per-call timeout for store operations (default: 200)
- RATE_LIMIT_ENABLED: Global switch for the rate limiter (default: True)
- CIRCUIT_BREAKER_FAILURE_THRESHOLD: Failures before the store circuit opens (default: 5)
- CIRCUIT_BREAKER_RECOVERY_TIMEOUT: Seconds before a half-open probe (default: 30)
- CONFIG_DIR: Directory holding YAML defaults (default: <project>/config)
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# Enums and Constants
# ============================================================================


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            # Structured logger is not initialized yet during bootstrap
            logging.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


# ============================================================================
# Configuration Metrics Tracker
# ============================================================================


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, value: Any, default: Any):
        """Record whether a config value came from environment."""
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        """Record a validation error."""
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration loading summary."""
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "defaults_used": list(self.defaults_used.keys()),
            "last_reload": self.last_reload,
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Centralized static configuration for quotawatch.

    All configuration values are loaded from environment variables with
    sensible defaults. Invalid values are logged and replaced by their
    default rather than failing the process.

    Usage
    -----
    >>> url = Config.REDIS_URL
    >>> if Config.is_production():
    ...     logger.info("Running in production mode")
    >>> summary = Config.get_config_summary()
    """

    # =========================================================================
    # Internal State
    # =========================================================================

    _metrics: Optional[_ConfigLoadMetrics] = None
    _enable_metrics: bool = True
    _validated: bool = False

    # =========================================================================
    # Accounting Store (Redis)
    # =========================================================================

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PASSWORD: Optional[str] = None
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_DECODE_RESPONSES: bool = True
    REDIS_OPERATION_TIMEOUT_MS: int = 200

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_TO_FILE: bool = True

    # =========================================================================
    # Directory Configuration
    # =========================================================================

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # =========================================================================
    # Metadata
    # =========================================================================

    SERVICE_NAME: str = "quotawatch"
    SERVICE_VERSION: str = "1.0.0"

    # =========================================================================
    # Rate Limiting
    # =========================================================================

    RATE_LIMIT_ENABLED: bool = True

    # =========================================================================
    # Circuit Breaker
    # =========================================================================

    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = 30

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        """Initialize metrics tracking if enabled."""
        if cls._enable_metrics and cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Parameters
        ----------
        key:
            Environment variable name.
        default:
            Default value if not set or invalid.
        min_val:
            Minimum allowed value (inclusive).
        max_val:
            Maximum allowed value (inclusive).

        Example
        -------
        >>> Config._safe_int("REDIS_MAX_CONNECTIONS", 50, min_val=1, max_val=500)
        50
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default, default)
            return default

        try:
            value = int(raw_value)
        except ValueError:
            error = f"{key}='{raw_value}' is not a valid integer, using default {default}"
            logging.warning(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)
            return default

        if min_val is not None and value < min_val:
            error = f"{key}={value} is below minimum {min_val}, using default {default}"
            logging.warning(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)
            return default

        if max_val is not None and value > max_val:
            error = f"{key}={value} exceeds maximum {max_val}, using default {default}"
            logging.warning(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, value, default)

        return value

    @classmethod
    def _parse_bool(cls, key: str, raw_value: str) -> Optional[bool]:
        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            return True
        if normalized in {"false", "no", "0", "off"}:
            return False

        error = f"{key}='{raw_value}' is not a valid boolean"
        logging.warning(error)
        if cls._metrics:
            cls._metrics.record_validation_error(key, error)
        return None

    @classmethod
    def _safe_bool(cls, key: str, default: bool) -> bool:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        cls._init_metrics()

        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default, default)
            return default

        value = cls._parse_bool(key, raw_value)
        if value is None:
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, value, default)

        return value

    @classmethod
    def _safe_optional_bool(cls, key: str) -> Optional[bool]:
        """Parse an optional boolean; None when unset or invalid."""
        cls._init_metrics()

        raw_value = os.getenv(key)
        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, None, None)
            return None

        value = cls._parse_bool(key, raw_value)
        if cls._metrics and value is not None:
            cls._metrics.record_env_load(key, True, value, None)
        return value

    @classmethod
    def _safe_str(
        cls,
        key: str,
        default: str,
        required: bool = False,
    ) -> str:
        """
        Safely get string from environment.

        Parameters
        ----------
        key:
            Environment variable name.
        default:
            Default value if not set.
        required:
            Whether this config is required (logged as an error when missing).
        """
        cls._init_metrics()

        value = os.getenv(key, default)
        from_env = key in os.environ

        if cls._metrics:
            cls._metrics.record_env_load(key, from_env, value, default)

        if required and not value:
            error = f"Required environment variable {key} is not set"
            logging.error(error)
            if cls._metrics:
                cls._metrics.record_validation_error(key, error)

        return value

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called automatically on module import; can be called again to pick up
        changed environment variables (tests do this after monkeypatching).
        """
        cls._init_metrics()

        # Accounting Store
        cls.REDIS_URL = cls._safe_str("REDIS_URL", "redis://localhost:6379/0", required=True)
        cls.REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None
        cls.REDIS_MAX_CONNECTIONS = cls._safe_int(
            "REDIS_MAX_CONNECTIONS", 50, min_val=1, max_val=500
        )
        cls.REDIS_OPERATION_TIMEOUT_MS = cls._safe_int(
            "REDIS_OPERATION_TIMEOUT_MS", 200, min_val=10, max_val=5000
        )

        # Environment
        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", "development")
        ).value
        cls.DEBUG = cls._safe_bool("DEBUG", False)
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_optional_bool("LOG_JSON")
        cls.LOG_TO_FILE = cls._safe_bool("LOG_TO_FILE", True)

        config_dir = os.getenv("CONFIG_DIR")
        if config_dir:
            cls.CONFIG_DIR = Path(config_dir).resolve()

        # Rate limiting
        cls.RATE_LIMIT_ENABLED = cls._safe_bool("RATE_LIMIT_ENABLED", True)

        # Circuit breaker
        cls.CIRCUIT_BREAKER_FAILURE_THRESHOLD = cls._safe_int(
            "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5, min_val=1, max_val=100
        )
        cls.CIRCUIT_BREAKER_RECOVERY_TIMEOUT = cls._safe_int(
            "CIRCUIT_BREAKER_RECOVERY_TIMEOUT", 30, min_val=1
        )

        if cls._metrics:
            cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ValueError:
            If required config values are missing or invalid in production.
        """
        if cls._validated:
            return

        logger = logging.getLogger(__name__)
        cls._init_metrics()

        try:
            cls.load()

            if not cls.REDIS_URL:
                raise ValueError("REDIS_URL environment variable is required")

            if cls.is_production() and "localhost" in cls.REDIS_URL:
                logger.warning(
                    "Production environment using localhost Redis - "
                    "this may be incorrect"
                )

            valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if cls.LOG_LEVEL.upper() not in valid_log_levels:
                logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
                cls.LOG_LEVEL = "INFO"

            if cls.is_production() and cls.DEBUG:
                logger.warning("DEBUG mode enabled in production!")

            cls._validated = True

            if cls._metrics and cls._metrics.validation_errors:
                logger.warning(
                    f"Configuration warnings: {cls._metrics.validation_errors}"
                )

        except Exception as e:
            logger.warning(f"Config validation warning (safe for tests): {e}")
            if cls.ENVIRONMENT.lower() == "production":
                logger.error("Configuration validation failed in production!")
                raise

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment."""
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_testing(cls) -> bool:
        """Check if running in testing environment."""
        return cls.ENVIRONMENT.lower() == "testing"

    # =========================================================================
    # Metrics & Summary
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Optional[_ConfigLoadMetrics]:
        """Get configuration loading metrics."""
        return cls._metrics

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """
        Get non-sensitive configuration summary for debugging.

        Example
        -------
        >>> Config.get_config_summary()["redis_password_set"]
        False
        """
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "redis_max_connections": cls.REDIS_MAX_CONNECTIONS,
            "redis_operation_timeout_ms": cls.REDIS_OPERATION_TIMEOUT_MS,
            "rate_limit_enabled": cls.RATE_LIMIT_ENABLED,
            "service_version": cls.SERVICE_VERSION,
            "redis_password_set": bool(cls.REDIS_PASSWORD),
            "config_dir": str(cls.CONFIG_DIR),
        }


# Auto-validate on import
Config.validate()
