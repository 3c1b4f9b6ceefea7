"""
Statistical detectors and their tuning.

Each detector consumes plain aggregates and returns a DetectorResult with
score and confidence in [0, 1], or None when the evidence is insufficient.

Example:
    >>> from sensory_alerts.detectors import detect_association
    >>> result = detect_association("noise", {"a": 20, "b": 5, "c": 8, "d": 30})
"""

from sensory_alerts.detectors.association import detect_association
from sensory_alerts.detectors.beta_rate import detect_beta_rate_shift
from sensory_alerts.detectors.burst import detect_burst
from sensory_alerts.detectors.cusum import CusumSide, detect_cusum_shift
from sensory_alerts.detectors.ewma import detect_ewma_trend
from sensory_alerts.detectors.factory import (
    alert_from_result,
    build_alert_id,
    severity_from_score,
)
from sensory_alerts.detectors.suite import DetectorSuite, create_detector_suite
from sensory_alerts.detectors.tuning import (
    adjust_multiplier_by_baseline_quality,
    clamp,
    compute_cusum_decision_interval_multiplier,
    compute_ewma_control_multiplier,
)

__all__ = [
    # Tuning
    "adjust_multiplier_by_baseline_quality",
    "clamp",
    "compute_cusum_decision_interval_multiplier",
    "compute_ewma_control_multiplier",
    # Detectors
    "CusumSide",
    "detect_association",
    "detect_beta_rate_shift",
    "detect_burst",
    "detect_cusum_shift",
    "detect_ewma_trend",
    # Alert creation
    "alert_from_result",
    "build_alert_id",
    "severity_from_score",
    # Configured suite
    "DetectorSuite",
    "create_detector_suite",
]
