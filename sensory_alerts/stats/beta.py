"""Beta distribution helpers for rate detectors."""

import math

from scipy import special


def regularized_incomplete_beta(a: float, b: float, x: float) -> float:
    """
    Regularized incomplete beta function I_x(a, b).

    This is the Beta(a, b) CDF at ``x``. ``x`` is clamped into [0, 1].

    Returns:
        float: I_x(a, b), or NaN when a or b is not a positive finite number.
    """
    if not (math.isfinite(a) and math.isfinite(b)) or a <= 0 or b <= 0:
        return float("nan")
    if math.isnan(x) or x <= 0:
        return 0.0
    if x >= 1:
        return 1.0
    return float(special.betainc(a, b, x))


def beta_survival(a: float, b: float, x: float) -> float:
    """P(X > x) for X ~ Beta(a, b)."""
    cdf = regularized_incomplete_beta(a, b, x)
    if math.isnan(cdf):
        return float("nan")
    return max(0.0, min(1.0, 1.0 - cdf))
