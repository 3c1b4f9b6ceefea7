"""Tests for Fisher's exact test, the robust estimators and the beta helpers."""

import math

import pytest

from sensory_alerts.stats.beta import beta_survival, regularized_incomplete_beta
from sensory_alerts.stats.contingency import fisher_exact_two_tailed
from sensory_alerts.stats.robust import mad, median


class TestFisherExact:
    def test_in_unit_interval(self):
        p = fisher_exact_two_tailed(20, 5, 8, 30)
        assert 0.0 <= p <= 1.0
        assert p < 0.001

    def test_symmetric_under_transpose(self):
        assert fisher_exact_two_tailed(20, 5, 8, 30) == pytest.approx(
            fisher_exact_two_tailed(20, 8, 5, 30)
        )

    def test_symmetric_under_row_swap(self):
        assert fisher_exact_two_tailed(3, 7, 9, 2) == pytest.approx(
            fisher_exact_two_tailed(9, 2, 3, 7)
        )

    def test_symmetric_under_column_swap(self):
        assert fisher_exact_two_tailed(3, 7, 9, 2) == pytest.approx(
            fisher_exact_two_tailed(7, 3, 2, 9)
        )

    def test_balanced_table(self):
        assert fisher_exact_two_tailed(5, 5, 5, 5) == pytest.approx(1.0)

    def test_degenerate_tables(self):
        assert fisher_exact_two_tailed(0, 0, 0, 0) == 1.0
        assert fisher_exact_two_tailed(-1, 2, 3, 4) == 1.0
        assert fisher_exact_two_tailed(float("inf"), 2, 3, 4) == 1.0

    def test_rounds_fractional_counts(self):
        assert fisher_exact_two_tailed(19.6, 5.2, 8, 30) == pytest.approx(
            fisher_exact_two_tailed(20, 5, 8, 30)
        )


class TestRobust:
    def test_median_ignores_nan(self):
        assert median([1, 3, float("nan"), 2]) == 2.0

    def test_median_empty(self):
        assert median([]) == 0.0

    def test_mad_raw(self):
        assert mad([1, 2, 3, 4, 100], scale="raw") == 1.0

    def test_mad_normal_scaled(self):
        assert mad([1, 2, 3, 4, 100]) == pytest.approx(1.4826, abs=1e-3)


class TestBeta:
    def test_uniform_cdf(self):
        assert regularized_incomplete_beta(1, 1, 0.3) == pytest.approx(0.3)

    def test_clamps_x(self):
        assert regularized_incomplete_beta(2, 3, -1) == 0.0
        assert regularized_incomplete_beta(2, 3, 2) == 1.0

    def test_invalid_parameters(self):
        assert math.isnan(regularized_incomplete_beta(0, 1, 0.5))
        assert math.isnan(beta_survival(1, -1, 0.5))

    def test_survival(self):
        assert beta_survival(1, 1, 0.25) == pytest.approx(0.75)
