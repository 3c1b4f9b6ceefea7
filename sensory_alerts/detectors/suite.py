"""
Configured detector suite.

Binds the detector functions to the tuning in ``EngineConfig.detectors`` and
the per-kind sensitivity in the alert settings, so callers only pass data.

Key Features:
    - Defaults from DetectorConfig (false-alert target, CUSUM k, EWMA lambda,
      association support, burst window)
    - Per-kind sensitivity scales the false-alert target
    - Explicit keyword arguments still override any configured value

Example:
    >>> config = load_config("config")
    >>> suite = create_detector_suite(config)
    >>> suite.association("noise", {"a": 20, "b": 5, "c": 8, "d": 30})
"""

from typing import Any, Dict, Mapping, Optional

import structlog

from sensory_alerts.config.models import (
    AlertSettings,
    DetectorConfig,
    EngineConfig,
    Sensitivity,
)
from sensory_alerts.detectors.association import detect_association
from sensory_alerts.detectors.burst import detect_burst
from sensory_alerts.detectors.cusum import detect_cusum_shift
from sensory_alerts.detectors.ewma import detect_ewma_trend
from sensory_alerts.models.alerts import AlertKind
from sensory_alerts.models.detector import DetectorResult

logger = structlog.get_logger(__name__)

# High sensitivity accepts more false alerts, low sensitivity fewer.
SENSITIVITY_TARGET_SCALE: Dict[Sensitivity, float] = {
    Sensitivity.HIGH: 0.5,
    Sensitivity.MEDIUM: 1.0,
    Sensitivity.LOW: 2.0,
}


class DetectorSuite:
    """
    Detectors with configured defaults.

    Attributes:
        config: Detector tuning.
        sensitivity_by_kind: Sensitivity per alert kind.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        sensitivity_by_kind: Optional[Mapping[AlertKind, Sensitivity]] = None,
    ) -> None:
        self.config = config or DetectorConfig()
        self.sensitivity_by_kind: Dict[AlertKind, Sensitivity] = dict(
            sensitivity_by_kind
            if sensitivity_by_kind is not None
            else AlertSettings().sensitivity_by_kind
        )

        logger.debug(
            "detector_suite_initialized",
            target_false_alerts_per_n=self.config.target_false_alerts_per_n,
        )

    def target_false_alerts_for(self, kind: Optional[AlertKind] = None) -> float:
        """False-alert target for an alert kind, scaled by its sensitivity."""
        target = self.config.target_false_alerts_per_n
        if kind is None:
            return target
        sensitivity = self.sensitivity_by_kind.get(AlertKind(kind), Sensitivity.MEDIUM)
        return target * SENSITIVITY_TARGET_SCALE[sensitivity]

    def _quality(self, baseline_quality_score: Optional[float]) -> Optional[float]:
        return baseline_quality_score if self.config.adapt_to_baseline_quality else None

    def association(self, label: str, contingency: Any, **kwargs: Any) -> Optional[DetectorResult]:
        kwargs.setdefault("min_support", self.config.association_min_support)
        return detect_association(label, contingency, **kwargs)

    def ewma_trend(
        self,
        series: Any,
        kind: Optional[AlertKind] = None,
        **kwargs: Any,
    ) -> Optional[DetectorResult]:
        kwargs.setdefault("lambda_", self.config.ewma_lambda)
        kwargs.setdefault("target_false_alerts_per_n", self.target_false_alerts_for(kind))
        kwargs.setdefault("adaptive", self.config.adapt_to_baseline_quality)
        return detect_ewma_trend(series, **kwargs)

    def cusum_shift(
        self,
        series: Any,
        kind: Optional[AlertKind] = None,
        **kwargs: Any,
    ) -> Optional[DetectorResult]:
        kwargs.setdefault("k_factor", self.config.cusum_k_factor)
        kwargs.setdefault("target_false_alerts_per_n", self.target_false_alerts_for(kind))
        kwargs["baseline_quality_score"] = self._quality(kwargs.get("baseline_quality_score"))
        return detect_cusum_shift(series, **kwargs)

    def burst(self, events: Any, **kwargs: Any) -> Optional[DetectorResult]:
        kwargs.setdefault("window_minutes", self.config.burst_window_minutes)
        kwargs.setdefault("min_events", self.config.burst_min_events)
        return detect_burst(events, **kwargs)


def create_detector_suite(config: Optional[EngineConfig] = None) -> DetectorSuite:
    """
    Factory function to create a DetectorSuite from engine configuration.

    Args:
        config: Loaded engine configuration (defaults when omitted).

    Returns:
        DetectorSuite: Suite using the configured tuning and sensitivity.
    """
    config = config or EngineConfig()
    suite = DetectorSuite(config.detectors, config.alerts.sensitivity_by_kind)
    logger.info(
        "detector_suite_created",
        cusum_k_factor=config.detectors.cusum_k_factor,
        ewma_lambda=config.detectors.ewma_lambda,
    )
    return suite
