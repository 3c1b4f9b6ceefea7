"""Tests for near-duplicate collapsing."""

from datetime import timedelta

import pytest

from sensory_alerts.config.models import AlertSettings
from sensory_alerts.models.alerts import AlertKind, AlertSeverity
from sensory_alerts.policy.engine import deduplicate_alerts


@pytest.fixture
def burst_of_duplicates(make_alert, now):
    return [
        make_alert(severity=AlertSeverity.MODERATE, created_at=now),
        make_alert(severity=AlertSeverity.CRITICAL, created_at=now + timedelta(minutes=10)),
        make_alert(severity=AlertSeverity.LOW, created_at=now + timedelta(minutes=20)),
    ]


class TestDeduplicateAlerts:
    def test_collapses_cluster(self, burst_of_duplicates, now):
        result = deduplicate_alerts(burst_of_duplicates)

        assert len(result) == 1
        representative = result[0]
        assert representative.id == burst_of_duplicates[1].id
        assert representative.severity == AlertSeverity.CRITICAL
        assert representative.created_at == now
        assert representative.governance.has_duplicates is True
        assert representative.governance.suppressed_count == 2

    def test_earliest_wins_ties(self, make_alert, now):
        alerts = [
            make_alert(created_at=now + timedelta(minutes=5)),
            make_alert(created_at=now),
        ]
        assert deduplicate_alerts(alerts)[0].id == alerts[1].id

    def test_does_not_mutate_input(self, burst_of_duplicates):
        deduplicate_alerts(burst_of_duplicates)
        assert all(a.governance is None for a in burst_of_duplicates)

    def test_idempotent(self, burst_of_duplicates, make_alert, now):
        alerts = burst_of_duplicates + [
            make_alert(kind=AlertKind.SAFETY, created_at=now + timedelta(minutes=5)),
            make_alert(created_at=now + timedelta(hours=3)),
            make_alert(created_at=now + timedelta(hours=3, minutes=30)),
        ]
        once = deduplicate_alerts(alerts)
        assert deduplicate_alerts(once) == once

    def test_window_anchored_at_earliest(self, make_alert, now):
        alerts = [
            make_alert(created_at=now),
            make_alert(created_at=now + timedelta(minutes=50)),
            make_alert(created_at=now + timedelta(minutes=100)),
        ]
        result = deduplicate_alerts(alerts, window=timedelta(hours=1))

        assert len(result) == 2
        assert result[0].governance.suppressed_count == 1
        assert result[1].id == alerts[2].id
        assert result[1].governance is None

    def test_keys_kept_apart(self, make_alert, now):
        alerts = [
            make_alert(kind=AlertKind.SAFETY, created_at=now),
            make_alert(created_at=now),
            make_alert(student_id="s2", created_at=now),
        ]
        assert [a.id for a in deduplicate_alerts(alerts)] == [a.id for a in alerts]

    def test_first_seen_order(self, make_alert, now):
        alerts = [
            make_alert(kind=AlertKind.SAFETY, created_at=now + timedelta(minutes=30)),
            make_alert(created_at=now + timedelta(minutes=10)),
            make_alert(kind=AlertKind.SAFETY, created_at=now),
        ]
        result = deduplicate_alerts(alerts)
        assert [a.kind for a in result] == [AlertKind.SAFETY, AlertKind.BEHAVIOR_SPIKE]

    def test_suppressed_counts_accumulate(self, make_alert, now):
        earlier = deduplicate_alerts(
            [make_alert(created_at=now), make_alert(created_at=now + timedelta(minutes=1))]
        )[0]
        result = deduplicate_alerts([earlier, make_alert(created_at=now + timedelta(minutes=2))])
        assert result[0].governance.suppressed_count == 2

    def test_empty(self):
        assert deduplicate_alerts([]) == []

    def test_window_from_settings(self, policies, make_alert, now):
        alerts = [make_alert(created_at=now), make_alert(created_at=now + timedelta(minutes=20))]
        assert len(policies.deduplicate_alerts(alerts, settings=AlertSettings(dedupe_window_minutes=10))) == 2
        assert len(policies.deduplicate_alerts(alerts)) == 1

    def test_window_in_milliseconds(self, make_alert, now):
        alerts = [make_alert(created_at=now), make_alert(created_at=now + timedelta(minutes=20))]
        assert len(deduplicate_alerts(alerts, window=10 * 60 * 1000)) == 2
        assert len(deduplicate_alerts(alerts, window=30 * 60 * 1000)) == 1
