"""
Unit tests for the nearest-rank percentile.
"""

import random

import pytest

from quotawatch.core.stats import nearest_rank_percentile

pytestmark = pytest.mark.unit


def test_empty_is_zero():
    assert nearest_rank_percentile([], 50) == 0.0


def test_exact_values():
    values = [100, 500, 1500]

    assert nearest_rank_percentile(values, 50) == 500
    assert nearest_rank_percentile(values, 95) == 1500
    assert nearest_rank_percentile(values, 0) == 100


def test_ten_samples():
    values = list(range(10, 110, 10))

    assert nearest_rank_percentile(values, 50) == 50
    assert nearest_rank_percentile(values, 90) == 90
    assert nearest_rank_percentile(values, 91) == 100


def test_ordering_and_max():
    rng = random.Random(7)
    for _ in range(50):
        values = sorted(rng.uniform(1, 5000) for _ in range(rng.randint(1, 200)))

        p50 = nearest_rank_percentile(values, 50)
        p95 = nearest_rank_percentile(values, 95)
        p99 = nearest_rank_percentile(values, 99)

        assert p50 <= p95 <= p99
        assert nearest_rank_percentile(values, 100) == max(values)
