"""
quotawatch logging: queue-backed structured logging with accounting context.
"""

from quotawatch.core.logging.logger import (
    CONTEXT_FIELDS,
    LogContext,
    LoggingHealth,
    LogSettings,
    clear_log_context,
    get_log_context,
    get_logger,
    get_logging_health,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "CONTEXT_FIELDS",
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LoggingHealth",
    "LogContext",
    "LogSettings",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
]
