"""
Pearson correlation for product price series.

Series of unequal length are aligned by truncating both to their common
length (earliest observations kept). The sum-of-products formula is used;
fewer than two aligned points or zero variance give 0. The result is
clamped to [-1, 1] to absorb floating-point overshoot.

Time Complexity: O(n)
Memory: O(n)
"""

from typing import Sequence

import numpy as np


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    n = min(len(x), len(y))
    if n < 2:
        return 0.0

    a = np.asarray(x[:n], dtype=float)
    b = np.asarray(y[:n], dtype=float)
    if not (np.all(np.isfinite(a)) and np.all(np.isfinite(b))):
        return 0.0
    if np.ptp(a) == 0 or np.ptp(b) == 0:
        return 0.0

    numerator = n * np.dot(a, b) - a.sum() * b.sum()
    var_a = n * np.dot(a, a) - a.sum() ** 2
    var_b = n * np.dot(b, b) - b.sum() ** 2
    if var_a <= 0 or var_b <= 0:
        return 0.0

    corr = numerator / np.sqrt(var_a * var_b)
    return float(np.clip(corr, -1.0, 1.0))
