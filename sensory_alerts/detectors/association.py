"""
Association detector.

Decides whether a behavior or emotion co-occurs with an environmental
context (noise, lighting, class period...) more than chance would explain.

The evidence is a 2x2 contingency table, optionally backed by two aligned
numeric series. The detector emits a result only when the 95% confidence
interval of the log-odds ratio excludes zero.

Example:
    >>> result = detect_association("noise vs meltdown", {"a": 20, "b": 5, "c": 8, "d": 30})
    >>> result.confidence >= 0.7
    True
"""

import math
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import structlog

from sensory_alerts.detectors.tuning import clamp
from sensory_alerts.models.alerts import SourceRef, SourceType
from sensory_alerts.models.detector import ContingencyTable, DetectorResult
from sensory_alerts.stats import (
    fisher_exact_two_tailed,
    p_value_for_correlation,
    pearson_correlation,
)

logger = structlog.get_logger(__name__)

Z_95 = 1.96
MIN_SERIES_POINTS = 5
DEFAULT_MIN_SUPPORT = 5


def _adjust(value: float) -> float:
    # Haldane-style correction for empty cells.
    return 0.5 if value <= 0 else value


def detect_association(
    label: str,
    contingency: Union[ContingencyTable, Mapping[str, float]],
    series_x: Optional[Sequence[float]] = None,
    series_y: Optional[Sequence[float]] = None,
    context: Optional[Dict[str, Any]] = None,
    min_support: float = DEFAULT_MIN_SUPPORT,
) -> Optional[DetectorResult]:
    """
    Detect a statistically significant association.

    Args:
        label: Display label for the evidence source.
        contingency: 2x2 table as a ContingencyTable or a mapping with keys
            a, b, c and d.
        series_x: Optional first numeric series.
        series_y: Optional second numeric series.
        context: Caller context copied into the evidence payload.
        min_support: Minimum table total to evaluate.

    Returns:
        Optional[DetectorResult]: The result, or None when support is too
        low or the log-odds interval includes zero.

    Raises:
        pydantic.ValidationError: If the table is malformed (missing,
            negative or non-finite counts).
    """
    table = (
        contingency
        if isinstance(contingency, ContingencyTable)
        else ContingencyTable.model_validate(dict(contingency))
    )
    a, b, c, d = table.a, table.b, table.c, table.d
    total = table.total

    if total < min_support:
        logger.debug(
            "association_insufficient_support",
            label=label,
            support=total,
            min_support=min_support,
        )
        return None

    odds_ratio = (_adjust(a) * _adjust(d)) / (_adjust(b) * _adjust(c))
    log_odds = math.log(odds_ratio)
    se = math.sqrt(1 / _adjust(a) + 1 / _adjust(b) + 1 / _adjust(c) + 1 / _adjust(d))
    ci_low = log_odds - Z_95 * se
    ci_high = log_odds + Z_95 * se

    if ci_low <= 0 <= ci_high:
        logger.debug(
            "association_rejected",
            label=label,
            log_odds=log_odds,
            ci_low=ci_low,
            ci_high=ci_high,
        )
        return None

    p_value_exact = fisher_exact_two_tailed(a, b, c, d)

    r = 0.0
    p_value = 1.0
    if (
        series_x is not None
        and series_y is not None
        and len(series_x) >= MIN_SERIES_POINTS
        and len(series_y) >= MIN_SERIES_POINTS
    ):
        n = min(len(series_x), len(series_y))
        r = pearson_correlation(series_x[:n], series_y[:n])
        p_value = p_value_for_correlation(r, n)

    combined = max(
        1.0 - p_value_exact,
        1.0 - p_value,
        1.0 - 1.0 / (1.0 + abs(log_odds)),
    )
    confidence = clamp(combined, 0.7, 0.99)
    score = clamp(min(abs(r), abs(log_odds) / 2.0), 0.0, 1.0)

    source = SourceRef(
        type=SourceType.PATTERN_ENGINE,
        label=label,
        details={
            "contingency": table.as_dict(),
            "odds_ratio": odds_ratio,
            "log_odds": log_odds,
            "log_odds_ci": [ci_low, ci_high],
            "correlation": r,
            "correlation_p_value": p_value,
            "p_value_exact": p_value_exact,
            "context": context,
            "support": total,
        },
    )

    logger.debug(
        "association_detected",
        label=label,
        odds_ratio=odds_ratio,
        p_value_exact=p_value_exact,
        confidence=confidence,
    )

    return DetectorResult(
        score=score,
        confidence=confidence,
        impact_hint="Statistically significant association detected",
        sources=[source],
        analysis={"standard_error": se},
    )
