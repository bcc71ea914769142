"""
Feature modules built on the core layer.

- ratelimit: fixed-window admission control per identity and traffic class
- performance: per-query telemetry, daily aggregation and reports
"""
