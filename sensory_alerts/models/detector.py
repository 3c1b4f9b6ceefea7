"""
Detector input and output models.

Detectors consume plain numeric aggregates and return a DetectorResult, or
None when the evidence is insufficient. Inputs are validated by pydantic so
a malformed table fails loudly instead of silently producing no signal.

Models:
    ContingencyTable: 2x2 co-occurrence counts
    TrendPoint: One point of a time series
    BurstEvent: One timestamped event for burst detection
    BetaPrior: Beta distribution prior for rate detectors
    DetectorResult: Score, confidence and evidence from any detector
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sensory_alerts.models.alerts import SourceRef


class ContingencyTable(BaseModel):
    """
    2x2 contingency counts.

    Layout::

                    outcome   no outcome
        exposed        a          b
        unexposed      c          d

    Counts are non-negative and finite. Fractional counts are accepted and
    rounded only where an exact test needs integers.

    Example:
        >>> table = ContingencyTable(a=20, b=5, c=8, d=30)
        >>> table.total
        63.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    a: float = Field(..., ge=0, allow_inf_nan=False, description="Exposed with outcome")
    b: float = Field(..., ge=0, allow_inf_nan=False, description="Exposed without outcome")
    c: float = Field(..., ge=0, allow_inf_nan=False, description="Unexposed with outcome")
    d: float = Field(..., ge=0, allow_inf_nan=False, description="Unexposed without outcome")

    @property
    def total(self) -> float:
        """Sum of all four cells."""
        return float(self.a + self.b + self.c + self.d)

    def as_dict(self) -> Dict[str, float]:
        return {"a": self.a, "b": self.b, "c": self.c, "d": self.d}


class TrendPoint(BaseModel):
    """A single time series observation (timestamp in epoch milliseconds)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: int
    value: float


class BurstEvent(BaseModel):
    """
    A timestamped event for burst detection.

    ``paired_value`` holds an optional co-measured value (e.g. sensory
    intensity alongside emotion intensity) used for cross-correlation.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    timestamp: int
    value: float = Field(..., allow_inf_nan=False)
    paired_value: Optional[float] = None


class BetaPrior(BaseModel):
    """Beta(alpha, beta) prior. Non-positive parameters fall back to Jeffreys."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    alpha: float = Field(default=0.5, allow_inf_nan=False)
    beta: float = Field(default=0.5, allow_inf_nan=False)

    @property
    def mean(self) -> float:
        a, b = self.effective()
        return a / (a + b)

    def effective(self) -> Tuple[float, float]:
        """Return (alpha, beta), substituting 0.5 for non-positive values."""
        alpha = self.alpha if self.alpha > 0 else 0.5
        beta = self.beta if self.beta > 0 else 0.5
        return alpha, beta


class DetectorResult(BaseModel):
    """
    Output of a statistical detector.

    Detectors clamp score and confidence into [0, 1] before constructing the
    result; a value outside that range fails validation.

    Attributes:
        score: Effect-size proxy in [0, 1].
        confidence: Confidence in [0, 1].
        impact_hint: Optional short description of the effect.
        sources: Ordered evidence references.
        threshold_applied: Decision threshold the detector used.
        analysis: Detector-specific diagnostics.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    score: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    confidence: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    impact_hint: Optional[str] = None
    sources: List[SourceRef] = Field(default_factory=list)
    threshold_applied: Optional[float] = None
    analysis: Dict[str, Any] = Field(default_factory=dict)


def series_values(series: Sequence[Union[TrendPoint, float]]) -> List[float]:
    """
    Extract the values of a series of TrendPoints or bare numbers.

    Missing and non-finite values become NaN so positions are preserved.
    """
    out = []
    for point in series:
        v = point.value if isinstance(point, TrendPoint) else point
        out.append(float(v) if v is not None and math.isfinite(v) else float("nan"))
    return out
