"""
quotawatch: per-identity rate limiting and query performance telemetry
backed by a shared Redis accounting store.
"""

__version__ = "1.0.0"
