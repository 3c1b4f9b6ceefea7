"""Tests for the configured detector suite."""

import pytest

from sensory_alerts.config import load_config
from sensory_alerts.config.models import DetectorConfig, EngineConfig, Sensitivity
from sensory_alerts.detectors import suite as suite_module
from sensory_alerts.detectors.suite import DetectorSuite, create_detector_suite
from sensory_alerts.models.alerts import AlertKind
from sensory_alerts.models.detector import BurstEvent

MINUTE = 60_000
T0 = 1_700_000_000_000
TABLE = {"a": 20, "b": 5, "c": 8, "d": 30}


def spaced_events(step_minutes, count=4):
    return [BurstEvent(timestamp=T0 + i * step_minutes * MINUTE, value=5) for i in range(count)]


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    (tmp_path / "alerts.yaml").write_text("settings:\n  dedupe_window_minutes: 30\n")
    (tmp_path / "features.yaml").write_text(
        "detectors:\n"
        "  target_false_alerts_per_n: 500\n"
        "  cusum_k_factor: 0.7\n"
        "  association_min_support: 100\n"
        "  burst_window_minutes: 5\n"
        "  adapt_to_baseline_quality: false\n"
    )
    return tmp_path


@pytest.fixture
def recorded(monkeypatch):
    calls = {}

    def record(name):
        def _detector(*args, **kwargs):
            calls[name] = kwargs
            return None

        return _detector

    monkeypatch.setattr(suite_module, "detect_cusum_shift", record("cusum"))
    monkeypatch.setattr(suite_module, "detect_ewma_trend", record("ewma"))
    return calls


class TestDetectorSuiteFromYaml:
    def test_burst_window_from_features(self, config_dir):
        suite = create_detector_suite(load_config(config_dir))
        events = spaced_events(3)

        assert suite.burst(events) is None
        assert DetectorSuite().burst(events) is not None

    def test_association_support_from_features(self, config_dir):
        suite = create_detector_suite(load_config(config_dir))

        assert suite.association("noise", TABLE) is None
        assert DetectorSuite().association("noise", TABLE) is not None

    def test_cusum_tuning_from_features(self, config_dir, recorded):
        suite = create_detector_suite(load_config(config_dir))
        suite.cusum_shift([1.0] * 10, baseline_quality_score=0.2)

        assert recorded["cusum"]["k_factor"] == 0.7
        assert recorded["cusum"]["target_false_alerts_per_n"] == 500
        assert recorded["cusum"]["baseline_quality_score"] is None


class TestDetectorSuite:
    def test_sensitivity_scales_target(self):
        suite = DetectorSuite(DetectorConfig(target_false_alerts_per_n=400))

        assert suite.target_false_alerts_for() == 400
        assert suite.target_false_alerts_for(AlertKind.SAFETY) == 200
        assert suite.target_false_alerts_for(AlertKind.DATA_QUALITY) == 800
        assert suite.target_false_alerts_for(AlertKind.BEHAVIOR_SPIKE) == 400

    def test_ewma_defaults(self, recorded):
        suite = DetectorSuite(
            DetectorConfig(ewma_lambda=0.3),
            {AlertKind.BEHAVIOR_SPIKE: Sensitivity.HIGH},
        )
        suite.ewma_trend([1.0] * 10, kind=AlertKind.BEHAVIOR_SPIKE)

        assert recorded["ewma"]["lambda_"] == 0.3
        assert recorded["ewma"]["target_false_alerts_per_n"] == 168
        assert recorded["ewma"]["adaptive"] is True

    def test_explicit_arguments_win(self, recorded):
        DetectorSuite().cusum_shift([1.0] * 10, k_factor=0.9, baseline_quality_score=0.4)

        assert recorded["cusum"]["k_factor"] == 0.9
        assert recorded["cusum"]["baseline_quality_score"] == 0.4

    def test_factory_uses_alert_sensitivity(self):
        config = EngineConfig(alerts={"sensitivity_by_kind": {"safety": "low"}})
        suite = create_detector_suite(config)

        assert suite.target_false_alerts_for(AlertKind.SAFETY) == 672
