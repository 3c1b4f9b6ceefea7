"""Exact tests on 2x2 contingency tables."""

import math

from scipy import stats


def fisher_exact_two_tailed(a: float, b: float, c: float, d: float) -> float:
    """
    Fisher's exact test, two-tailed, for the table ``[[a, b], [c, d]]``.

    Cells are rounded to the nearest integer. The test is symmetric under
    transposition and row or column swaps.

    Args:
        a: Exposed with outcome.
        b: Exposed without outcome.
        c: Unexposed with outcome.
        d: Unexposed without outcome.

    Returns:
        float: p in [0, 1]. 1.0 for negative, non-finite or all-zero tables.

    Example:
        >>> fisher_exact_two_tailed(0, 0, 0, 0)
        1.0
    """
    cells = (a, b, c, d)
    if any(v is None or not math.isfinite(v) or v < 0 for v in cells):
        return 1.0
    ia, ib, ic, id_ = (int(round(v)) for v in cells)
    if ia + ib + ic + id_ == 0:
        return 1.0

    _, p = stats.fisher_exact([[ia, ib], [ic, id_]], alternative="two-sided")
    p = float(p)
    if not math.isfinite(p):
        return 1.0
    return max(0.0, min(1.0, p))
