"""
CUSUM shift detector.

Tabular cumulative-sum control chart for small, persistent shifts in the
mean that an EWMA would take longer to flag.

For each finite point x:
    upper: S+ = max(0, S+ + x - (mu + k))
    lower: S- = max(0, S- + (mu - k) - x)

with k = k_factor * sigma. A shift is reported when the largest statistic on
the monitored side exceeds the decision interval h = H * sigma.
"""

import math
from enum import Enum
from typing import Optional, Sequence, Union

import structlog

from sensory_alerts.detectors.tuning import (
    DEFAULT_TARGET_FALSE_ALERTS_PER_N,
    adjust_multiplier_by_baseline_quality,
    clamp,
    compute_cusum_decision_interval_multiplier,
)
from sensory_alerts.models.alerts import SourceRef, SourceType
from sensory_alerts.models.detector import DetectorResult, TrendPoint, series_values
from sensory_alerts.stats import mad, median

logger = structlog.get_logger(__name__)

MIN_SIGMA = 1e-6


class CusumSide(str, Enum):
    """Which direction of shift to monitor."""

    UPPER = "upper"
    LOWER = "lower"
    BOTH = "both"


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def detect_cusum_shift(
    series: Sequence[Union[TrendPoint, float]],
    k_factor: float = 0.5,
    sided: Union[CusumSide, str] = CusumSide.UPPER,
    baseline_mean: Optional[float] = None,
    baseline_sigma: Optional[float] = None,
    decision_interval: Optional[float] = None,
    label: Optional[str] = None,
    min_points: int = 6,
    target_false_alerts_per_n: float = DEFAULT_TARGET_FALSE_ALERTS_PER_N,
    baseline_quality_score: Optional[float] = None,
) -> Optional[DetectorResult]:
    """
    Detect a sustained shift with a tabular CUSUM.

    Args:
        series: TrendPoints or bare values, oldest first.
        k_factor: Reference value in sigma units, clamped to [0.1, 1].
        sided: ``upper``, ``lower`` or ``both``.
        baseline_mean: Target mean; defaults to the series median.
        baseline_sigma: Baseline sigma; defaults to the normal-scaled MAD.
        decision_interval: Explicit H multiplier (at least 1); defaults to
            the tuned value for ``k_factor`` and the false-alert target.
        label: Evidence label.
        min_points: Minimum series length (at least 5).
        target_false_alerts_per_n: False-alert target.
        baseline_quality_score: Quality of the baseline in [0, 1].

    Returns:
        Optional[DetectorResult]: The result, or None for short or flat
        series or when no statistic exceeds h.
    """
    min_points = max(5, int(min_points)) if _is_finite(min_points) else 6
    if series is None or len(series) < min_points:
        return None

    side_mode = CusumSide(sided)
    values = series_values(series)
    finite = [v for v in values if math.isfinite(v)]
    if not finite or all(v == finite[0] for v in finite):
        return None

    mu = baseline_mean if _is_finite(baseline_mean) else median(finite)
    if _is_finite(baseline_sigma) and baseline_sigma > 0:
        sigma = max(baseline_sigma, MIN_SIGMA)
    else:
        sigma = max(mad(finite, "normal"), MIN_SIGMA)

    k_factor = clamp(k_factor, 0.1, 1.0) if _is_finite(k_factor) else 0.5
    k = k_factor * sigma
    h_multiplier = (
        max(1.0, decision_interval)
        if _is_finite(decision_interval)
        else compute_cusum_decision_interval_multiplier(k_factor, target_false_alerts_per_n)
    )
    h_multiplier = adjust_multiplier_by_baseline_quality(h_multiplier, baseline_quality_score)
    h = h_multiplier * sigma

    s_upper = s_lower = 0.0
    max_upper = max_lower = 0.0
    idx_upper = idx_lower = -1
    track_upper = side_mode in (CusumSide.UPPER, CusumSide.BOTH)
    track_lower = side_mode in (CusumSide.LOWER, CusumSide.BOTH)

    for i, x in enumerate(values):
        if not math.isfinite(x):
            continue
        if track_upper:
            s_upper = max(0.0, s_upper + x - (mu + k))
            if s_upper > max_upper:
                max_upper, idx_upper = s_upper, i
        if track_lower:
            s_lower = max(0.0, s_lower + (mu - k) - x)
            if s_lower > max_lower:
                max_lower, idx_lower = s_lower, i

    if side_mode == CusumSide.LOWER or (side_mode == CusumSide.BOTH and max_lower > max_upper):
        max_cusum, exceed_index, side = max_lower, idx_lower, CusumSide.LOWER
    else:
        max_cusum, exceed_index, side = max_upper, idx_upper, CusumSide.UPPER

    if max_cusum <= h or exceed_index < 0:
        logger.debug(
            "cusum_no_shift",
            label=label or "CUSUM",
            max_cusum=max_cusum,
            decision_interval=h,
        )
        return None

    ratio = max_cusum / h
    score = clamp((ratio - 1.0) / 2.0, 0.0, 1.0)
    confidence = clamp(0.65 + math.log1p(max(0.0, ratio - 1.0)) * 0.2, 0.65, 0.98)

    point = series[exceed_index]
    exceed_timestamp = point.timestamp if isinstance(point, TrendPoint) else None

    logger.debug(
        "cusum_shift_detected",
        label=label or "CUSUM",
        k_factor=k_factor,
        h_multiplier=h_multiplier,
        threshold_ratio=ratio,
        side=side.value,
    )

    return DetectorResult(
        score=score,
        confidence=confidence,
        impact_hint="Sustained small shift detected via CUSUM",
        sources=[
            SourceRef(
                type=SourceType.PATTERN_ENGINE,
                label=label or "CUSUM Shift",
                details={
                    "baseline_mean": mu,
                    "sigma": sigma,
                    "k_factor": k_factor,
                    "reference_value": k,
                    "decision_interval": h,
                    "decision_interval_multiplier": h_multiplier,
                    "max_cusum": max_cusum,
                    "exceed_index": exceed_index,
                    "exceed_timestamp": exceed_timestamp,
                    "exceed_value": values[exceed_index],
                    "threshold_ratio": ratio,
                    "side": side.value,
                },
            )
        ],
        threshold_applied=h_multiplier,
        analysis={
            "exceed_index": exceed_index,
            "exceed_value": values[exceed_index],
            "cusum_max": max_cusum,
            "side": side.value,
        },
    )
