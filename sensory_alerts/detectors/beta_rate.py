"""
Beta-binomial rate shift detector.

Updates a Beta prior for the baseline rate of an outcome (e.g. the share of
sessions with a meltdown) with recent successes/trials, and reports a shift
when the posterior puts at least 90% of its mass above baseline + delta.
"""

import math
from typing import Mapping, Optional, Union

import structlog

from sensory_alerts.detectors.tuning import clamp
from sensory_alerts.models.alerts import SourceRef, SourceType
from sensory_alerts.models.detector import BetaPrior, DetectorResult
from sensory_alerts.stats import beta_survival

logger = structlog.get_logger(__name__)

PROBABILITY_THRESHOLD = 0.9


def detect_beta_rate_shift(
    successes: float,
    trials: float,
    baseline_prior: Optional[Union[BetaPrior, Mapping[str, float]]],
    delta: float = 0.1,
    min_support: float = 5,
    label: Optional[str] = None,
) -> Optional[DetectorResult]:
    """
    Detect an increase in an event rate over its baseline.

    Args:
        successes: Events observed in the recent window.
        trials: Opportunities in the recent window.
        baseline_prior: Beta prior for the baseline rate. Non-positive
            parameters fall back to Jeffreys (0.5, 0.5).
        delta: Minimum meaningful increase, clamped to [0, 0.5].
        min_support: Minimum number of trials.
        label: Evidence label.

    Returns:
        Optional[DetectorResult]: The result, or None without a prior,
        with too few trials, or when the posterior is not convincing.

    Example:
        >>> result = detect_beta_rate_shift(18, 20, BetaPrior(alpha=2, beta=8))
        >>> result.confidence >= 0.9
        True
    """
    if baseline_prior is None:
        return None
    prior = (
        baseline_prior
        if isinstance(baseline_prior, BetaPrior)
        else BetaPrior.model_validate(dict(baseline_prior))
    )
    if not (math.isfinite(successes) and math.isfinite(trials)) or trials <= 0:
        return None
    if trials < min_support:
        return None

    alpha0, beta0 = prior.effective()
    baseline_rate = alpha0 / (alpha0 + beta0)

    alpha_post = alpha0 + successes
    beta_post = beta0 + (trials - successes)
    if alpha_post <= 0 or beta_post <= 0:
        return None
    posterior_mean = alpha_post / (alpha_post + beta_post)

    total = alpha_post + beta_post
    variance = (alpha_post * beta_post) / (total * total * (total + 1))
    std_dev = math.sqrt(max(variance, 0.0))
    ci_lower = clamp(posterior_mean - 1.96 * std_dev, 0.0, 1.0)
    ci_upper = clamp(posterior_mean + 1.96 * std_dev, 0.0, 1.0)

    delta = clamp(delta, 0.0, 0.5)
    threshold_rate = clamp(baseline_rate + delta, 0.0, 0.9999)

    probability = beta_survival(alpha_post, beta_post, threshold_rate)
    if not math.isfinite(probability) or probability < PROBABILITY_THRESHOLD:
        logger.debug(
            "beta_rate_no_shift",
            label=label or "Rate shift",
            probability=probability,
            baseline_rate=baseline_rate,
        )
        return None

    effect = posterior_mean - baseline_rate
    score = clamp(effect / max(delta, 1e-3), 0.0, 1.0)
    confidence = clamp(probability, 0.9, 0.99)

    return DetectorResult(
        score=score,
        confidence=confidence,
        impact_hint=f"Rate increased by {effect * 100:.1f} pts over baseline",
        sources=[
            SourceRef(
                type=SourceType.PATTERN_ENGINE,
                label=label or "Rate shift",
                details={
                    "baseline_rate": baseline_rate,
                    "posterior_mean": posterior_mean,
                    "delta": delta,
                    "probability": probability,
                    "successes": successes,
                    "trials": trials,
                    "posterior_alpha": alpha_post,
                    "posterior_beta": beta_post,
                    "credible_interval": {
                        "lower": ci_lower,
                        "upper": ci_upper,
                        "level": 0.95,
                        "n": trials,
                    },
                },
            )
        ],
        threshold_applied=threshold_rate,
    )
