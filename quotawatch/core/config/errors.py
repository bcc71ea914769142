"""
Configuration error hierarchy for quotawatch.

Exception Hierarchy
-------------------
ConfigError (base)
├── ConfigValidationError (type/bounds validation failures)
└── ConfigInitializationError (startup/init failures)
"""


class ConfigError(Exception):
    """
    Base exception for all configuration-related errors.

    Example
    -------
    >>> try:
    ...     TrafficClassRegistry.from_config()
    ... except ConfigError as e:
    ...     logger.error(f"Config operation failed: {e}")
    """


class ConfigValidationError(ConfigError):
    """
    Raised when a configuration value fails validation.

    Examples: a traffic class with a non-positive window, a phase ratio
    outside [0, 1], an unknown identity source.
    """


class ConfigInitializationError(ConfigError):
    """
    Raised when ConfigManager cannot be initialized at all.

    Individual malformed YAML files are logged and skipped; this is reserved
    for a config directory that exists but cannot be read.
    """


__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
