"""
Composition root for quotawatch.

- AccountingContext: builds the Accounting Store and the rate limiter,
  metrics recorder and aggregator on top of it; owns their lifecycle.
"""

from quotawatch.core.infra.application_context import AccountingContext

__all__ = ["AccountingContext"]
