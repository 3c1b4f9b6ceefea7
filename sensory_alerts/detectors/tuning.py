"""
Control-chart threshold tuning.

Maps a target false-alert rate ("about one false alert per N points") to
EWMA control-limit and CUSUM decision-interval multipliers, and adapts those
multipliers to the quality of the baseline they are applied against.

Key Features:
    - EWMA: two-sided normal quantile z = Phi^-1(1 - 1/(2N)), bounded [2, 5]
    - CUSUM: heuristic around the conventional 5 sigma, bounded [4, 7.5]
    - Baseline quality: poor baselines widen limits by up to 25%, very good
      baselines narrow them by up to 5%

Example:
    >>> round(compute_ewma_control_multiplier(336), 2)
    2.97
    >>> compute_cusum_decision_interval_multiplier()
    5.0
"""

import math
from typing import Optional

from sensory_alerts.stats.normal import inverse_standard_normal_cdf

DEFAULT_TARGET_FALSE_ALERTS_PER_N = 336
DEFAULT_EWMA_MULTIPLIER = 3.0
DEFAULT_CUSUM_K_FACTOR = 0.5


def clamp(value: float, lo: float, hi: float) -> float:
    """
    Clamp ``value`` into [lo, hi].

    Inverted bounds are swapped. Non-finite values clamp to ``lo``.
    """
    if lo > hi:
        lo, hi = hi, lo
    if value is None or not math.isfinite(value):
        return lo
    return min(max(value, lo), hi)


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value)


def compute_ewma_control_multiplier(
    target_false_alerts_per_n: float = DEFAULT_TARGET_FALSE_ALERTS_PER_N,
) -> float:
    """
    Two-sided EWMA control-limit multiplier.

    Solves ``2 * (1 - Phi(z)) = 1 / N`` for z.

    Args:
        target_false_alerts_per_n: Accept about one false alert per N points.

    Returns:
        float: z in [2.0, 5.0], or 3.0 when N is invalid (non-finite or <= 1)
        or the quantile is not a positive finite number.
    """
    n = target_false_alerts_per_n
    if not _is_finite(n) or n <= 1:
        return DEFAULT_EWMA_MULTIPLIER
    z = inverse_standard_normal_cdf(1.0 - 1.0 / (2.0 * n))
    if not math.isfinite(z) or z <= 0:
        return DEFAULT_EWMA_MULTIPLIER
    return max(2.0, min(z, 5.0))


def compute_cusum_decision_interval_multiplier(
    k_factor: float = DEFAULT_CUSUM_K_FACTOR,
    target_false_alerts_per_n: float = DEFAULT_TARGET_FALSE_ALERTS_PER_N,
) -> float:
    """
    One-sided CUSUM decision-interval multiplier (in units of sigma).

    A tuned heuristic around the conventional h = 5, not an exact ARL
    solution. Smaller reference values k and larger N targets give wider
    intervals.

    Args:
        k_factor: Reference value in units of sigma. Non-positive or
            non-finite values fall back to 0.5.
        target_false_alerts_per_n: False-alert target. Values that are not
            finite or are <= 1 fall back to 336.

    Returns:
        float: h in [4.0, 7.5].
    """
    k = k_factor if _is_finite(k_factor) and k_factor > 0 else DEFAULT_CUSUM_K_FACTOR
    n = (
        target_false_alerts_per_n
        if _is_finite(target_false_alerts_per_n) and target_false_alerts_per_n > 1
        else DEFAULT_TARGET_FALSE_ALERTS_PER_N
    )
    n_scale = clamp(math.log10(n / DEFAULT_TARGET_FALSE_ALERTS_PER_N), -0.5, 0.5)
    k_scale = clamp(0.5 / k - 1.0, -0.4, 0.6)
    h = 5.0 * (1.0 + 0.15 * n_scale + 0.2 * k_scale)
    return clamp(h, 4.0, 7.5)


def adjust_multiplier_by_baseline_quality(
    multiplier: float,
    quality_score: Optional[float] = None,
) -> float:
    """
    Adapt a threshold multiplier to baseline quality.

    Args:
        multiplier: Base multiplier.
        quality_score: Baseline quality in [0, 1] (clamped).

    Returns:
        float: ``multiplier`` scaled up by as much as 25% for quality below 0.6,
        scaled down by as much as 5% for quality above 0.9, otherwise
        unchanged. Invalid multipliers and missing quality pass through.
    """
    if not _is_finite(multiplier) or multiplier <= 0:
        return multiplier
    if not _is_finite(quality_score):
        return multiplier
    q = clamp(quality_score, 0.0, 1.0)
    if q < 0.6:
        return multiplier * (1.0 + 0.25 * (0.6 - q) / 0.6)
    if q > 0.9:
        return multiplier * (1.0 - 0.05 * (q - 0.9) / 0.1)
    return multiplier
