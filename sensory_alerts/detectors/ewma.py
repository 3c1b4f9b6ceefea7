"""
EWMA trend detector.

Smooths a series with an exponentially weighted moving average and flags a
sustained excursion of the smoothed values beyond control limits derived
from a robust baseline.

Control limits:
    median +/- z * sigma * sqrt(lambda / (2 - lambda))

where z comes from the false-alert target (see ``tuning``) and sigma from the
supplied IQR (IQR / 1.349) or the normal-scaled MAD of the series.
"""

import math
from typing import Optional, Sequence, Union

import structlog

from sensory_alerts.detectors.tuning import (
    DEFAULT_TARGET_FALSE_ALERTS_PER_N,
    adjust_multiplier_by_baseline_quality,
    clamp,
    compute_ewma_control_multiplier,
)
from sensory_alerts.models.alerts import SourceRef, SourceType
from sensory_alerts.models.detector import DetectorResult, TrendPoint, series_values
from sensory_alerts.stats import mad, median

logger = structlog.get_logger(__name__)

IQR_TO_SIGMA = 1.349
MIN_SIGMA = 1e-6


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def detect_ewma_trend(
    series: Sequence[Union[TrendPoint, float]],
    lambda_: float = 0.2,
    min_points: int = 8,
    label: Optional[str] = None,
    baseline_median: Optional[float] = None,
    baseline_iqr: Optional[float] = None,
    target_false_alerts_per_n: float = DEFAULT_TARGET_FALSE_ALERTS_PER_N,
    baseline_quality_score: Optional[float] = None,
    adaptive: bool = True,
    sustained_points_required: int = 3,
    recent_window_size: int = 5,
) -> Optional[DetectorResult]:
    """
    Detect a sustained trend with an EWMA control chart.

    Args:
        series: TrendPoints or bare values, oldest first.
        lambda_: Smoothing weight, clamped to [0.001, 0.9].
        min_points: Minimum series length (at least 5).
        label: Evidence label.
        baseline_median: Baseline centre; defaults to the series median.
        baseline_iqr: Baseline IQR; defaults to a MAD-based estimate.
        target_false_alerts_per_n: False-alert target for the multiplier.
        baseline_quality_score: Quality of the baseline in [0, 1].
        adaptive: Adjust the multiplier by baseline quality.
        sustained_points_required: Points beyond a limit needed to fire
            (at least 2).
        recent_window_size: Trailing window checked (at least 3).

    Returns:
        Optional[DetectorResult]: The result, or None for short or flat
        series or no sustained excursion.
    """
    min_points = max(5, int(min_points)) if _is_finite(min_points) else 8
    if series is None or len(series) < min_points:
        return None

    lam = lambda_ if _is_finite(lambda_) else 0.2
    lam = clamp(lam, 1e-3, 0.9)

    values = series_values(series)
    finite = [v for v in values if math.isfinite(v)]
    if not finite or all(v == finite[0] for v in finite):
        return None

    center = baseline_median if _is_finite(baseline_median) else median(finite)
    if _is_finite(baseline_iqr):
        iqr = max(baseline_iqr, MIN_SIGMA)
        sigma0 = max(iqr / IQR_TO_SIGMA, MIN_SIGMA)
    else:
        sigma0 = mad(finite, "normal") or MIN_SIGMA
        iqr = sigma0 * IQR_TO_SIGMA

    base_multiplier = compute_ewma_control_multiplier(target_false_alerts_per_n)
    z_multiplier = (
        adjust_multiplier_by_baseline_quality(base_multiplier, baseline_quality_score)
        if adaptive
        else base_multiplier
    )
    sigma_ewma = sigma0 * math.sqrt(lam / (2.0 - lam))
    upper = center + z_multiplier * sigma_ewma
    lower = center - z_multiplier * sigma_ewma

    ewma = []
    prev = center
    for x in values:
        xi = x if math.isfinite(x) else prev
        prev = lam * xi + (1.0 - lam) * prev
        ewma.append(prev)

    window = max(3, int(recent_window_size)) if _is_finite(recent_window_size) else 5
    required = (
        max(2, int(sustained_points_required))
        if _is_finite(sustained_points_required)
        else 3
    )
    recent = ewma[-min(window, len(ewma)):]
    upper_count = sum(1 for v in recent if v > upper)
    lower_count = sum(1 for v in recent if v < lower)
    sustained = max(upper_count, lower_count)

    if sustained < required:
        logger.debug(
            "ewma_no_trend",
            label=label or "EWMA",
            sustained=sustained,
            required=required,
        )
        return None

    direction = "increase" if upper_count > lower_count else "decrease"
    latest_ewma = ewma[-1]
    z_score = (latest_ewma - center) / (sigma_ewma or 1.0)

    score = clamp(abs(z_score) / max(4.0, z_multiplier + 1.0), 0.0, 1.0)
    confidence = clamp(
        0.6 + (sustained - required) * 0.08 + min(0.2, abs(z_score) / 10.0),
        0.6,
        0.97,
    )

    source = SourceRef(
        type=SourceType.PATTERN_ENGINE,
        label=label or "EWMA Trend",
        details={
            "lambda": lam,
            "baseline_median": center,
            "baseline_iqr": iqr,
            "sigma0": sigma0,
            "sigma_ewma": sigma_ewma,
            "z_multiplier": z_multiplier,
            "upper_limit": upper,
            "lower_limit": lower,
            "sustained_points": sustained,
            "direction": direction,
            "z_score": z_score,
            "latest_value": values[-1] if math.isfinite(values[-1]) else None,
            "ewma_latest": latest_ewma,
        },
    )

    logger.debug(
        "ewma_trend_detected",
        label=label or "EWMA",
        sustained=sustained,
        window=window,
        z_multiplier=z_multiplier,
        quality_score=baseline_quality_score,
    )

    impact = (
        "Sustained increase relative to baseline"
        if direction == "increase"
        else "Sustained decrease relative to baseline"
    )
    return DetectorResult(
        score=score,
        confidence=confidence,
        impact_hint=impact,
        sources=[source],
        threshold_applied=z_multiplier,
        analysis={
            "ci_ewma": {"lower": lower, "upper": upper, "n": len(series)},
            "sustained_window": window,
            "sustained_required": required,
        },
    )
