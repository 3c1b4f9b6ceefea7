"""Tests for the alert policy engine."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from sensory_alerts.config.models import AlertSettings, QuietHours
from sensory_alerts.models.alerts import AlertKind, AlertMetadata, AlertSeverity
from sensory_alerts.policy.engine import (
    AlertPolicies,
    apply_severity_cap,
    calculate_dedupe_key,
    create_alert_policies,
)
from sensory_alerts.policy.quiet_hours import is_within_quiet_hours
from sensory_alerts.policy.state import PolicyState


@pytest.fixture
def quiet_settings():
    return AlertSettings(student_id="s1", quiet_hours=QuietHours(start="20:00", end="07:00"))


@pytest.fixture
def late_evening():
    return datetime(2024, 3, 4, 22, 0)


class TestDedupeKey:
    def test_explicit_key_wins(self, make_alert):
        assert calculate_dedupe_key(make_alert(dedupe_key="custom")) == "custom"

    def test_stable_for_same_context(self, make_alert):
        first = make_alert(metadata=AlertMetadata(context_key="math"))
        second = make_alert(metadata=AlertMetadata(context_key="math"), severity=AlertSeverity.LOW)
        assert calculate_dedupe_key(first) == calculate_dedupe_key(second)

    def test_differs_by_context_and_kind(self, make_alert):
        base = calculate_dedupe_key(make_alert())
        assert base != calculate_dedupe_key(make_alert(metadata=AlertMetadata(context_key="art")))
        assert base != calculate_dedupe_key(make_alert(kind=AlertKind.SAFETY))
        assert base != calculate_dedupe_key(make_alert(student_id="s2"))


class TestQuietHours:
    def test_low_blocked_during_quiet_hours(self, policies, make_alert, quiet_settings, late_evening):
        alert = make_alert(severity=AlertSeverity.LOW, created_at=late_evening)
        decision = policies.can_create_alert(alert, quiet_settings)

        assert not decision.allowed
        assert decision.reasons == ["quiet_hours"]
        assert decision.governance.quiet_hours is True

    def test_critical_allowed_during_quiet_hours(self, policies, make_alert, quiet_settings, late_evening):
        alert = make_alert(severity=AlertSeverity.CRITICAL, created_at=late_evening)
        decision = policies.can_create_alert(alert, quiet_settings)

        assert decision.allowed
        assert decision.governance.quiet_hours is True

    def test_override_severity(self, policies, make_alert, late_evening):
        settings = AlertSettings(
            quiet_hours=QuietHours(start="20:00", end="07:00", override_severity=AlertSeverity.IMPORTANT)
        )
        alert = make_alert(severity=AlertSeverity.IMPORTANT, created_at=late_evening)
        assert policies.can_create_alert(alert, settings).allowed

    def test_outside_window(self, policies, make_alert, quiet_settings, now):
        alert = make_alert(severity=AlertSeverity.LOW, created_at=now)
        assert policies.can_create_alert(alert, quiet_settings).allowed

    def test_inclusive_bounds(self):
        quiet = QuietHours(start="20:00", end="07:00")
        assert is_within_quiet_hours(datetime(2024, 3, 4, 20, 0), quiet)
        assert is_within_quiet_hours(datetime(2024, 3, 4, 7, 0), quiet)
        assert not is_within_quiet_hours(datetime(2024, 3, 4, 7, 1), quiet)

    def test_same_day_window(self):
        quiet = QuietHours(start="12:00", end="13:00")
        assert is_within_quiet_hours(datetime(2024, 3, 4, 12, 30), quiet)
        assert not is_within_quiet_hours(datetime(2024, 3, 4, 22, 0), quiet)

    def test_days_of_week(self):
        # 2024-03-04 is a Monday (1)
        quiet = QuietHours(start="20:00", end="07:00", days_of_week=[1])
        assert is_within_quiet_hours(datetime(2024, 3, 4, 22, 0), quiet)
        assert is_within_quiet_hours(datetime(2024, 3, 5, 3, 0), quiet)
        assert not is_within_quiet_hours(datetime(2024, 3, 4, 3, 0), quiet)
        assert not is_within_quiet_hours(datetime(2024, 3, 5, 22, 0), quiet)

    def test_timezone(self):
        quiet = QuietHours(start="20:00", end="07:00", timezone="America/New_York")
        # 21:00 in New York on 3 March
        assert is_within_quiet_hours(datetime(2024, 3, 4, 2, 0, tzinfo=timezone.utc), quiet)
        # 10:00 in New York
        assert not is_within_quiet_hours(datetime(2024, 3, 4, 15, 0, tzinfo=timezone.utc), quiet)

    def test_apply_quiet_hours_annotates_copies(self, policies, make_alert, quiet_settings, late_evening, now):
        inside = make_alert(created_at=late_evening)
        outside = make_alert(created_at=now)
        annotated = policies.apply_quiet_hours([inside, outside], quiet_settings)

        assert annotated[0].governance.quiet_hours is True
        assert annotated[1].governance is None
        assert inside.governance is None


class TestSnooze:
    def test_snoozed_key_is_blocked(self, policies, make_alert, now):
        alert = make_alert()
        key = calculate_dedupe_key(alert)
        until = policies.snooze("s1", key, hours=2)

        assert until == now + timedelta(hours=2)
        decision = policies.can_create_alert(alert)
        assert not decision.allowed
        assert "snoozed" in decision.reasons
        assert decision.governance.snoozed is True

    def test_snooze_expires(self, policies, make_alert, now):
        alert = make_alert()
        policies.snooze("s1", calculate_dedupe_key(alert), hours=2)
        assert policies.can_create_alert(alert, at=now + timedelta(hours=3)).allowed

    def test_default_hours_from_settings(self, policies, now):
        assert policies.snooze("s1", "key") == now + timedelta(hours=24)

    def test_dont_show_for_days(self, policies, now):
        assert policies.dont_show_for_days("s1", "key") == now + timedelta(days=7)
        assert policies.dont_show_for_days("s1", "key", days=2) == now + timedelta(days=2)

    def test_clear_snooze(self, policies):
        policies.snooze("s1", "key", hours=2)
        assert policies.is_snoozed("s1", "key")
        assert policies.clear_snooze("s1", "key")
        assert not policies.is_snoozed("s1", "key")
        assert not policies.clear_snooze("s1", "key")

    def test_snooze_is_per_student(self, policies):
        policies.snooze("s1", "key", hours=2)
        assert not policies.is_snoozed("s2", "key")


class TestDailyCaps:
    def test_cap_reached_from_state(self, policies, make_alert, settings):
        for _ in range(4):
            alert = make_alert()
            assert policies.can_create_alert(alert, settings).allowed
            policies.record_alert_created(alert, settings)

        decision = policies.can_create_alert(make_alert(), settings)
        assert not decision.allowed
        assert decision.reasons == ["cap_exceeded"]
        assert decision.governance.cap_exceeded is True

    def test_caps_are_per_severity(self, policies, make_alert, settings):
        for _ in range(4):
            policies.record_alert_created(make_alert(), settings)
        assert policies.can_create_alert(make_alert(severity=AlertSeverity.IMPORTANT), settings).allowed

    def test_low_is_unlimited_by_default(self, policies, make_alert, settings):
        for _ in range(20):
            policies.record_alert_created(make_alert(severity=AlertSeverity.LOW), settings)
        assert policies.can_create_alert(make_alert(severity=AlertSeverity.LOW), settings).allowed

    def test_caps_reset_next_day(self, policies, make_alert, settings, now):
        for _ in range(4):
            policies.record_alert_created(make_alert(), settings)
        tomorrow = make_alert(created_at=now + timedelta(days=1))
        assert policies.can_create_alert(tomorrow, settings).allowed

    def test_cap_from_history(self, policies, make_alert, now):
        settings = AlertSettings(daily_caps={"important": 2})
        history = [
            make_alert(severity=AlertSeverity.IMPORTANT),
            make_alert(severity=AlertSeverity.IMPORTANT),
            make_alert(severity=AlertSeverity.IMPORTANT, student_id="s2"),
        ]
        candidate = make_alert(severity=AlertSeverity.IMPORTANT)
        assert not policies.can_create_alert(candidate, settings, history=history).allowed
        assert policies.can_create_alert(candidate, settings, history=history[1:]).allowed

    def test_get_today_counts(self, policies, make_alert, settings):
        policies.record_alert_created(make_alert(severity=AlertSeverity.CRITICAL), settings)
        policies.record_alert_created(make_alert(), settings)
        counts = policies.get_today_counts("s1")

        assert counts[AlertSeverity.CRITICAL] == 1
        assert counts[AlertSeverity.MODERATE] == 1
        assert counts[AlertSeverity.LOW] == 0

    def test_enforce_cap_limits_in_time_order(self, policies, make_alert, now):
        settings = AlertSettings(daily_caps={"moderate": 2})
        alerts = [
            make_alert(created_at=now + timedelta(minutes=30)),
            make_alert(created_at=now + timedelta(minutes=10)),
            make_alert(created_at=now + timedelta(minutes=20)),
        ]
        result = policies.enforce_cap_limits(alerts, settings)

        assert [a.id for a in result] == [a.id for a in alerts]
        assert result[0].governance.cap_exceeded is True
        assert result[1].governance is None
        assert result[2].governance is None

    def test_enforce_cap_limits_with_existing_counts(self, policies, make_alert):
        settings = AlertSettings(daily_caps={"moderate": 2})
        result = policies.enforce_cap_limits(
            [make_alert(), make_alert(severity=AlertSeverity.LOW)],
            settings,
            existing_counts={AlertSeverity.MODERATE: 2},
        )
        assert result[0].governance.cap_exceeded is True
        assert result[1].governance is None


class TestSeverityCap:
    def test_downgrades_to_ceiling(self, make_alert):
        settings = AlertSettings(max_severity_by_kind={"data_quality": "low"})
        alert = make_alert(kind=AlertKind.DATA_QUALITY, severity=AlertSeverity.CRITICAL)
        capped = apply_severity_cap(alert, settings)

        assert capped.severity == AlertSeverity.LOW
        assert capped.governance.severity_capped is True
        assert alert.severity == AlertSeverity.CRITICAL

    def test_leaves_other_kinds(self, make_alert):
        settings = AlertSettings(max_severity_by_kind={"data_quality": "low"})
        alert = make_alert(severity=AlertSeverity.CRITICAL)
        assert apply_severity_cap(alert, settings) is alert


class TestThrottle:
    def test_delay_grows_exponentially(self, policies):
        first = policies.get_throttle_delay(AlertSeverity.MODERATE, 1)
        second = policies.get_throttle_delay(AlertSeverity.MODERATE, 2)
        assert first == timedelta(seconds=2)
        assert second == timedelta(seconds=4)

    def test_exponent_is_capped(self, policies):
        assert policies.get_throttle_delay(AlertSeverity.LOW, 10) == policies.get_throttle_delay(
            AlertSeverity.LOW, 50
        )

    def test_max_delay(self, policies):
        settings = AlertSettings(throttle={"max_delay_by_severity": {"low": 60}})
        assert policies.get_throttle_delay(AlertSeverity.LOW, 10, settings) == timedelta(seconds=60)

    def test_record_schedules_next_eligible(self, policies, make_alert, now):
        alert = make_alert()
        next_eligible = policies.record_alert_created(alert)

        assert next_eligible == now + timedelta(seconds=2)
        assert policies.should_throttle(alert, now + timedelta(seconds=1)).throttled
        assert not policies.should_throttle(alert, now + timedelta(seconds=3)).throttled

    def test_gate_ignores_throttle_by_default(self, policies, make_alert):
        alert = make_alert()
        policies.record_alert_created(alert)
        assert policies.can_create_alert(alert).allowed

    def test_gate_enforces_throttle_on_request(self, policies, make_alert, now):
        alert = make_alert()
        policies.record_alert_created(alert)
        decision = policies.can_create_alert(alert, enforce_throttle=True)

        assert not decision.allowed
        assert decision.reasons == ["throttled"]
        assert decision.governance.next_eligible_at == now + timedelta(seconds=2)

    def test_reset_throttle(self, policies, make_alert, now):
        alert = make_alert()
        policies.record_alert_created(alert)
        policies.reset_throttle("s1", calculate_dedupe_key(alert))
        assert not policies.should_throttle(alert, now).throttled


class TestStateHousekeeping:
    def test_long_running_engine_drops_stale_state(self, state, settings, make_alert, now):
        current = {"at": now}
        policies = AlertPolicies(state=state, clock=lambda: current["at"], default_settings=settings)

        for day in range(30):
            current["at"] = now + timedelta(days=day)
            alert = make_alert(
                created_at=current["at"], metadata=AlertMetadata(context_key=f"ctx{day}")
            )
            policies.record_alert_created(alert)
            policies.snooze("s1", f"key{day}", hours=1)

        later = now + timedelta(days=60)
        current["at"] = later
        assert policies.can_create_alert(make_alert(created_at=later)).allowed

        size = state.size()
        assert size["created"] == 0
        assert size["snoozes"] == 0
        assert size["throttles"] == 0

    def test_todays_records_survive_pruning(self, policies, state, make_alert):
        for _ in range(3):
            policies.record_alert_created(make_alert())
        policies.can_create_alert(make_alert())

        assert state.size()["created"] == 3

    def test_expired_snooze_is_dropped_on_check(self, policies, state, now):
        policies.snooze("s1", "key", hours=1)
        assert not policies.is_snoozed("s1", "key", now + timedelta(hours=2))
        assert state.get_snooze("s1", "key") is None

    def test_elapsed_throttle_starts_over(self, policies, state, make_alert, now):
        alert = make_alert()
        policies.record_alert_created(alert)
        decision = policies.should_throttle(alert, now + timedelta(seconds=5))

        assert not decision.throttled
        assert decision.attempts == 0
        assert state.get_throttle("s1", calculate_dedupe_key(alert)).attempts == 0


class TestAuditTrail:
    def test_records_decisions_newest_first(self, policies, make_alert, quiet_settings, late_evening):
        allowed = make_alert()
        blocked = make_alert(severity=AlertSeverity.LOW, created_at=late_evening)
        policies.can_create_alert(allowed, quiet_settings)
        policies.can_create_alert(blocked, quiet_settings)

        trail = policies.get_audit_trail("s1")
        assert [e.alert_id for e in trail] == [blocked.id, allowed.id]
        assert trail[0].allowed is False
        assert trail[0].reasons == ["quiet_hours"]

    def test_limit(self, policies, make_alert):
        for _ in range(5):
            policies.can_create_alert(make_alert(severity=AlertSeverity.LOW))
        assert len(policies.get_audit_trail("s1", limit=3)) == 3

    def test_bounded_per_student(self, make_alert, clock, settings):
        policies = AlertPolicies(state=PolicyState(), clock=clock, default_settings=settings)
        for _ in range(250):
            policies.can_create_alert(make_alert(severity=AlertSeverity.LOW))
        assert len(policies.get_audit_trail("s1", limit=1000)) == 200

    def test_export_and_clear(self, policies, make_alert):
        alert = make_alert()
        policies.can_create_alert(alert)
        exported = json.loads(policies.export_audit_trail("s1"))

        assert exported[0]["alert_id"] == alert.id
        assert exported[0]["allowed"] is True

        policies.clear_audit_trail("s1")
        assert policies.get_audit_trail("s1") == []


class TestSettingsInput:
    def test_raw_mapping_is_normalized(self, policies, make_alert, late_evening):
        raw = {"quiet_hours": {"start": "25:00", "end": "07:00"}, "daily_caps": {"low": -3}}
        alert = make_alert(severity=AlertSeverity.LOW, created_at=late_evening)
        assert policies.can_create_alert(alert, raw).allowed

    def test_default_settings_have_quiet_hours(self, make_alert, clock):
        policies = create_alert_policies(clock=clock)
        alert = make_alert(severity=AlertSeverity.LOW, created_at=datetime(2024, 3, 4, 23, 0))
        assert not policies.can_create_alert(alert).allowed
