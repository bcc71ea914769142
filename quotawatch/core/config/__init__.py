"""
Configuration layer for quotawatch.

- `Config`: static settings from the environment (loaded on import).
- `ConfigManager`: dot-notation access to YAML defaults and overrides.
"""

from quotawatch.core.config.config import Config, Environment
from quotawatch.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)
from quotawatch.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
