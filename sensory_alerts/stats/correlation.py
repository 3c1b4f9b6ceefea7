"""
Pearson correlation and its significance.

Both functions are total: degenerate input yields a neutral value
(r = 0, p = 1) rather than NaN or an exception.
"""

import math
from typing import Sequence

import numpy as np
from scipy import stats


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Sample Pearson correlation of two series.

    Only the common-length prefix is used, and only pairs where both values
    are finite.

    Args:
        x: First series.
        y: Second series.

    Returns:
        float: r in [-1, 1], or 0.0 for fewer than two usable pairs or a
        zero-variance series.

    Example:
        >>> pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8])
        1.0
    """
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    xs = np.asarray(x[:n], dtype=float)
    ys = np.asarray(y[:n], dtype=float)
    mask = np.isfinite(xs) & np.isfinite(ys)
    xs = xs[mask]
    ys = ys[mask]
    if xs.size < 2:
        return 0.0

    dx = xs - xs.mean()
    dy = ys - ys.mean()
    sxx = float(np.dot(dx, dx))
    syy = float(np.dot(dy, dy))
    if sxx <= 0 or syy <= 0:
        return 0.0
    r = float(np.dot(dx, dy)) / math.sqrt(sxx * syy)
    if not math.isfinite(r):
        return 0.0
    return max(-1.0, min(1.0, r))


def p_value_for_correlation(r: float, n: int) -> float:
    """
    Two-tailed p-value for H0: r = 0.

    Uses Student's t with ``n - 2`` degrees of freedom,
    ``t = r * sqrt((n - 2) / (1 - r^2))``.

    Args:
        r: Sample correlation.
        n: Number of pairs.

    Returns:
        float: p in [0, 1]. 1.0 when n < 3 or r is not finite, 0.0 for a
        perfect correlation.
    """
    if n < 3 or r is None or not math.isfinite(r):
        return 1.0
    if abs(r) >= 1.0:
        return 0.0
    df = n - 2
    t = r * math.sqrt(df / (1.0 - r * r))
    p = 2.0 * float(stats.t.sf(abs(t), df))
    if not math.isfinite(p):
        return 1.0
    return max(0.0, min(1.0, p))
