"""
Core infrastructure layer for quotawatch.

Purpose
-------
A single import surface for the subsystems every feature module builds on:

- Configuration (Config, ConfigManager)
- Logging (structured logging, logger factory)
- Exceptions (store and rate-limit error hierarchy)
- Accounting Store (contract, Redis and in-memory implementations)

Design Decisions
----------------
- No logic and no I/O beyond what the submodules do on import.
- `config` is imported first; the logging subsystem reads it on import.
- The composition root (`quotawatch.core.infra`) is not re-exported here
  because it depends on the feature modules.
"""

from quotawatch.core.config import Config, ConfigManager, Environment
from quotawatch.core.exceptions import (
    QuotawatchInfrastructureException,
    RateLimitExceededError,
    StoreCircuitOpenError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from quotawatch.core.logging import LogContext, get_logger
from quotawatch.core.redis import (
    AccountingStore,
    InMemoryAccountingStore,
    RedisAccountingStore,
    StoreHealth,
)

__all__ = [
    "Config",
    "ConfigManager",
    "Environment",
    "get_logger",
    "LogContext",
    "QuotawatchInfrastructureException",
    "StoreError",
    "StoreUnavailableError",
    "StoreTimeoutError",
    "StoreCircuitOpenError",
    "RateLimitExceededError",
    "AccountingStore",
    "StoreHealth",
    "RedisAccountingStore",
    "InMemoryAccountingStore",
]
