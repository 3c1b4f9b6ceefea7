"""Tests for the CUSUM shift detector."""

import pytest

from sensory_alerts.detectors.cusum import CusumSide, detect_cusum_shift
from sensory_alerts.models.detector import TrendPoint


def points(values, start=1_700_000_000_000, step=3_600_000):
    return [TrendPoint(timestamp=start + i * step, value=v) for i, v in enumerate(values)]


@pytest.fixture
def shifted_up():
    return points([0] * 5 + [2] * 10)


class TestDetectCusumShift:
    def test_detects_upward_shift(self, shifted_up):
        result = detect_cusum_shift(shifted_up, baseline_mean=0, baseline_sigma=1)

        assert result is not None
        details = result.sources[0].details
        assert details["side"] == "upper"
        assert details["max_cusum"] == pytest.approx(15.0)
        assert details["exceed_index"] == 14
        assert details["exceed_timestamp"] == shifted_up[14].timestamp
        assert details["decision_interval"] == pytest.approx(5.0)
        assert 0.65 <= result.confidence <= 0.98
        assert 0.0 <= result.score <= 1.0

    def test_upper_side_ignores_downward_shift(self):
        series = points([0] * 5 + [-2] * 10)
        assert detect_cusum_shift(series, baseline_mean=0, baseline_sigma=1) is None

    def test_lower_side(self):
        series = points([0] * 5 + [-2] * 10)
        result = detect_cusum_shift(series, sided=CusumSide.LOWER, baseline_mean=0, baseline_sigma=1)
        assert result is not None
        assert result.analysis["side"] == "lower"

    def test_both_sides_picks_larger(self):
        series = points([0] * 5 + [-2] * 10)
        result = detect_cusum_shift(series, sided="both", baseline_mean=0, baseline_sigma=1)
        assert result.analysis["side"] == "lower"

    def test_small_deviations_not_flagged(self):
        series = points([0, 0.3, -0.2, 0.4, 0.1, -0.3, 0.2, 0.0])
        assert detect_cusum_shift(series, baseline_mean=0, baseline_sigma=1) is None

    def test_short_series(self):
        assert detect_cusum_shift(points([0, 5, 5]), baseline_mean=0, baseline_sigma=1) is None

    def test_flat_series(self):
        assert detect_cusum_shift(points([3] * 10)) is None

    def test_explicit_decision_interval(self, shifted_up):
        assert detect_cusum_shift(shifted_up, baseline_mean=0, baseline_sigma=1, decision_interval=20) is None
        result = detect_cusum_shift(shifted_up, baseline_mean=0, baseline_sigma=1, decision_interval=10)
        assert result.threshold_applied == pytest.approx(10.0)

    def test_bare_values_have_no_timestamp(self):
        result = detect_cusum_shift([0] * 5 + [2] * 10, baseline_mean=0, baseline_sigma=1)
        assert result.sources[0].details["exceed_timestamp"] is None

    def test_skips_missing_values(self):
        values = [0] * 5 + [2, float("nan"), 2, 2, 2, 2, 2, 2, 2, 2]
        result = detect_cusum_shift(values, baseline_mean=0, baseline_sigma=1)
        assert result.sources[0].details["max_cusum"] == pytest.approx(13.5)
