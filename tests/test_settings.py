"""Tests for settings presets, merging, validation and migration."""

import pytest

from sensory_alerts.config.models import AlertSettings, DailyCaps, QuietHours, Sensitivity
from sensory_alerts.config.settings import (
    DEFAULT_ALERT_SETTINGS,
    PRESETS,
    PolicyPreset,
    deep_merge,
    explain_settings,
    get_preset,
    merge_settings,
    migrate_settings,
    validate_alert_settings,
)
from sensory_alerts.models.alerts import AlertKind, AlertSeverity


class TestDeepMerge:
    def test_nested_merge(self):
        assert deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}}) == {
            "a": {"x": 1, "y": 3},
            "b": 1,
        }

    def test_inputs_untouched(self):
        base = {"a": {"x": 1}}
        overrides = {"a": {"x": 2}}
        deep_merge(base, overrides)
        assert base == {"a": {"x": 1}}
        assert overrides == {"a": {"x": 2}}

    def test_lists_replace(self):
        assert deep_merge({"days": [1, 2]}, {"days": [3]}) == {"days": [3]}

    def test_enum_keys(self):
        merged = deep_merge({"low": 1}, {AlertSeverity.LOW: 5})
        assert merged == {"low": 5}


class TestPresets:
    def test_all_presets_valid(self):
        assert set(PRESETS) == set(PolicyPreset)
        for settings in PRESETS.values():
            assert isinstance(settings, AlertSettings)
            assert settings.quiet_hours is not None

    def test_middle(self):
        middle = get_preset("middle")
        assert middle.quiet_hours.start == "21:00"
        assert middle.daily_caps.moderate == 4
        assert middle.daily_caps.low == 8
        assert middle.max_severity_for(AlertKind.DATA_QUALITY) == AlertSeverity.LOW

    def test_special_needs_snooze(self):
        assert get_preset(PolicyPreset.SPECIAL_NEEDS).snooze.default_hours == 36

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown preset"):
            get_preset("university")


class TestValidateAlertSettings:
    def test_none_is_default(self):
        result = validate_alert_settings(None)
        assert result.is_valid
        assert result.errors == []
        assert result.normalized == AlertSettings()

    def test_model_passes_through(self):
        result = validate_alert_settings(DEFAULT_ALERT_SETTINGS)
        assert result.normalized is DEFAULT_ALERT_SETTINGS

    def test_not_a_mapping(self):
        result = validate_alert_settings("quiet please")
        assert not result.is_valid
        assert result.normalized == AlertSettings()

    def test_invalid_quiet_hours_dropped(self):
        result = validate_alert_settings({"quiet_hours": {"start": "25:00", "end": "07:00"}})
        assert not result.is_valid
        assert result.normalized.quiet_hours is None

    def test_unknown_timezone_dropped(self):
        result = validate_alert_settings(
            {"quiet_hours": {"start": "20:00", "end": "07:00", "timezone": "Mars/Olympus"}}
        )
        assert not result.is_valid
        assert result.normalized.quiet_hours is None

    def test_invalid_days_filtered(self):
        result = validate_alert_settings(
            {"quiet_hours": {"start": "20:00", "end": "07:00", "days_of_week": [1, 9, "x"]}}
        )
        assert result.normalized.quiet_hours.days_of_week == [1]

    def test_invalid_cap_falls_back(self):
        result = validate_alert_settings({"daily_caps": {"critical": -1, "moderate": 6}})
        assert not result.is_valid
        assert result.normalized.daily_caps == DailyCaps(critical=1, moderate=6)

    def test_unknown_keys_reported(self):
        result = validate_alert_settings({"volume": 11})
        assert result.errors == ["unknown setting 'volume'"]

    def test_invalid_kind_entries(self):
        result = validate_alert_settings(
            {
                "max_severity_by_kind": {"weather": "low", "safety": "extreme", "data_quality": "low"},
                "sensitivity_by_kind": {"safety": "low"},
            }
        )
        assert len(result.errors) == 2
        assert result.normalized.max_severity_by_kind == {AlertKind.DATA_QUALITY: AlertSeverity.LOW}
        assert result.normalized.sensitivity_by_kind[AlertKind.SAFETY] == Sensitivity.LOW
        assert result.normalized.sensitivity_by_kind[AlertKind.DATA_QUALITY] == Sensitivity.LOW

    def test_invalid_dedupe_window(self):
        result = validate_alert_settings({"dedupe_window_minutes": 0})
        assert not result.is_valid
        assert result.normalized.dedupe_window_minutes == 60

    def test_invalid_throttle(self):
        result = validate_alert_settings({"throttle": {"base_by_severity": {"low": 0.5}}})
        assert not result.is_valid
        assert result.normalized.throttle.base_for(AlertSeverity.LOW) == 2.5


class TestMergeSettings:
    def test_partial_override(self):
        settings = merge_settings(get_preset("middle"), {"daily_caps": {"low": 3}})
        assert settings.daily_caps.low == 3
        assert settings.daily_caps.moderate == 4
        assert settings.quiet_hours.start == "21:00"

    def test_default_base(self):
        settings = merge_settings(None, {"snooze": {"default_hours": 12}})
        assert settings.snooze.default_hours == 12
        assert settings.snooze.dont_show_again_days == 7
        assert settings.quiet_hours == QuietHours(start="22:00", end="07:00")

    def test_invalid_override_normalized(self):
        settings = merge_settings(DEFAULT_ALERT_SETTINGS, {"quiet_hours": {"start": "nope"}})
        assert settings.quiet_hours is None


class TestMigrateSettings:
    def test_legacy_record(self):
        settings = migrate_settings(
            {
                "studentId": "s9",
                "caps": {"CRIT": 2, "LOW": 999},
                "quietHours": {"start": "21:30", "end": "06:30", "daysOfWeek": [1, 2]},
                "snoozePreferences": {"defaultHours": 12},
            }
        )
        assert settings.student_id == "s9"
        assert settings.daily_caps.critical == 2
        assert settings.daily_caps.important == 2
        assert settings.daily_caps.low == 999
        assert settings.quiet_hours.start == "21:30"
        assert settings.quiet_hours.days_of_week == [1, 2]
        assert settings.snooze.default_hours == 12
        assert settings.snooze.dont_show_again_days == 7

    def test_empty_record(self):
        settings = migrate_settings({})
        assert settings.quiet_hours == DEFAULT_ALERT_SETTINGS.quiet_hours


class TestExplainSettings:
    def test_defaults(self):
        text = explain_settings(DEFAULT_ALERT_SETTINGS)
        assert text.startswith("Quiet hours from 22:00 to 07:00.")
        assert "low unlimited" in text
        assert "Default snooze: 24h" in text

    def test_ceilings(self):
        assert "data_quality at most low" in explain_settings(get_preset("middle"))
