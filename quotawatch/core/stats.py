"""
Small numeric helpers shared by store metrics and report aggregation.
"""

from __future__ import annotations

import math
from typing import Sequence


def nearest_rank_percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile over an ascending sequence.

    The element at index ``ceil(p / 100 * n) - 1`` (clamped to the valid
    range) is returned, so every result is an actual sample. An empty
    sequence yields 0.0.

    Examples
    --------
    >>> nearest_rank_percentile([100, 200, 300, 400], 50)
    200
    >>> nearest_rank_percentile([100, 200, 300, 400], 95)
    400
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0

    index = math.ceil(p / 100 * n) - 1
    index = max(0, min(index, n - 1))
    return sorted_values[index]
