"""
quotawatch Test Suite
=====================

Test Organization
-----------------
- tests/unit/          : Fast tests against the in-memory store (no external dependencies)
- tests/integration/   : Tests against a real Redis started with testcontainers

Testing Philosophy
------------------
- Unit tests: fast, isolated, controllable clock
- Integration tests: slower, exercise the real Redis command semantics
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
