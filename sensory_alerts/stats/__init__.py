"""
Statistics primitives used by the detectors.

All functions are pure and deterministic. They never raise for numeric input
and fall back to neutral values (r = 0, p = 1) for degenerate data.

Example:
    >>> from sensory_alerts.stats import fisher_exact_two_tailed
    >>> p = fisher_exact_two_tailed(20, 5, 8, 30)
"""

from sensory_alerts.stats.beta import beta_survival, regularized_incomplete_beta
from sensory_alerts.stats.contingency import fisher_exact_two_tailed
from sensory_alerts.stats.correlation import pearson_correlation, p_value_for_correlation
from sensory_alerts.stats.normal import (
    erf,
    inverse_standard_normal_cdf,
    standard_normal_cdf,
)
from sensory_alerts.stats.robust import mad, median

__all__ = [
    "beta_survival",
    "erf",
    "fisher_exact_two_tailed",
    "inverse_standard_normal_cdf",
    "mad",
    "median",
    "p_value_for_correlation",
    "pearson_correlation",
    "regularized_incomplete_beta",
    "standard_normal_cdf",
]
