"""
Standard normal distribution helpers.

Provides a fast error function, the standard normal CDF built on it, and the
inverse CDF used to turn false-alert targets into control-chart multipliers.

Key Features:
    - Abramowitz-Stegun 7.1.26 error function (|error| <= 1.5e-7)
    - Acklam rational approximation of the normal quantile
    - One Halley refinement step against the CDF above, so that
      ``inverse_standard_normal_cdf(standard_normal_cdf(z))`` round-trips

Example:
    >>> round(inverse_standard_normal_cdf(0.975), 3)
    1.96
"""

import math

# Abramowitz-Stegun 7.1.26
_AS_A1 = 0.254829592
_AS_A2 = -0.284496736
_AS_A3 = 1.421413741
_AS_A4 = -1.453152027
_AS_A5 = 1.061405429
_AS_P = 0.3275911

# Acklam coefficients
_A = (
    -3.969683028665376e1,
    2.209460984245205e2,
    -2.759285104469687e2,
    1.38357751867269e2,
    -3.066479806614716e1,
    2.506628277459239,
)
_B = (
    -5.447609879822406e1,
    1.615858368580409e2,
    -1.556989798598866e2,
    6.680131188771972e1,
    -1.328068155288572e1,
)
_C = (
    -7.784894002430293e-3,
    -3.223964580411365e-1,
    -2.400758277161838,
    -2.549732539343734,
    4.374664141464968,
    2.938163982698783,
)
_D = (
    7.784695709041462e-3,
    3.224671290700398e-1,
    2.445134137142996,
    3.754408661907416,
)

P_LOW = 0.02425
P_HIGH = 1 - P_LOW

# Below this tail mass the erf approximation error dominates the quantile,
# so the Halley step would move the estimate away from the true value.
_REFINE_MIN_TAIL = 1e-5

_SQRT2 = math.sqrt(2.0)
_SQRT2PI = math.sqrt(2.0 * math.pi)


def erf(x: float) -> float:
    """
    Error function, Abramowitz-Stegun 7.1.26.

    Odd-symmetric with ``erf(0) == 0`` exactly.

    Args:
        x: Input value.

    Returns:
        float: erf(x), or NaN for NaN input.
    """
    if math.isnan(x):
        return float("nan")
    if x == 0:
        return 0.0
    sign = 1.0 if x > 0 else -1.0
    ax = abs(x)
    t = 1.0 / (1.0 + _AS_P * ax)
    poly = ((((_AS_A5 * t + _AS_A4) * t + _AS_A3) * t + _AS_A2) * t + _AS_A1) * t
    return sign * (1.0 - poly * math.exp(-ax * ax))


def standard_normal_cdf(z: float) -> float:
    """Standard normal CDF, ``0.5 * (1 + erf(z / sqrt(2)))``."""
    return 0.5 * (1.0 + erf(z / _SQRT2))


def inverse_standard_normal_cdf(p: float) -> float:
    """
    Inverse of the standard normal CDF (probit).

    Uses Acklam's rational approximation with break points at 0.02425 and
    0.97575, then one Halley step against ``standard_normal_cdf``.

    Args:
        p: Probability.

    Returns:
        float: z such that Phi(z) = p. ``-inf`` at 0, ``+inf`` at 1 and NaN
        for NaN or values outside [0, 1].

    Example:
        >>> inverse_standard_normal_cdf(0.5)
        0.0
    """
    if math.isnan(p) or p < 0 or p > 1:
        return float("nan")
    if p == 0:
        return float("-inf")
    if p == 1:
        return float("inf")

    if p < P_LOW:
        q = math.sqrt(-2.0 * math.log(p))
        x = _tail(q)
    elif p > P_HIGH:
        q = math.sqrt(-2.0 * math.log(1.0 - p))
        x = -_tail(q)
    else:
        q = p - 0.5
        r = q * q
        num = (((((_A[0] * r + _A[1]) * r + _A[2]) * r + _A[3]) * r + _A[4]) * r + _A[5]) * q
        den = ((((_B[0] * r + _B[1]) * r + _B[2]) * r + _B[3]) * r + _B[4]) * r + 1.0
        x = num / den

    if min(p, 1.0 - p) >= _REFINE_MIN_TAIL:
        e = standard_normal_cdf(x) - p
        u = e * _SQRT2PI * math.exp(x * x / 2.0)
        x = x - u / (1.0 + x * u / 2.0)
    return x


def _tail(q: float) -> float:
    num = ((((_C[0] * q + _C[1]) * q + _C[2]) * q + _C[3]) * q + _C[4]) * q + _C[5]
    den = (((_D[0] * q + _D[1]) * q + _D[2]) * q + _D[3]) * q + 1.0
    return num / den
