"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest

from sensory_alerts.config.models import AlertSettings
from sensory_alerts.models.alerts import AlertEvent, AlertKind, AlertSeverity
from sensory_alerts.policy.engine import AlertPolicies
from sensory_alerts.policy.state import PolicyState

# Monday, 4 March 2024, noon UTC
NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def state():
    return PolicyState()


@pytest.fixture
def settings():
    """Settings without quiet hours so only the rule under test applies."""
    return AlertSettings(student_id="s1")


@pytest.fixture
def policies(state, clock, settings):
    return AlertPolicies(state=state, clock=clock, default_settings=settings)


@pytest.fixture
def make_alert():
    """Build an AlertEvent with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "id": f"alert_{counter['n']}",
            "student_id": "s1",
            "kind": AlertKind.BEHAVIOR_SPIKE,
            "severity": AlertSeverity.MODERATE,
            "confidence": 0.8,
            "created_at": NOW,
        }
        data.update(overrides)
        return AlertEvent(**data)

    return _make
