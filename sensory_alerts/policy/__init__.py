"""
Alert governance: creation gate, snoozes, quiet hours, caps, throttling,
deduplication and the audit trail.

Example:
    >>> from sensory_alerts.policy import create_alert_policies
    >>> policies = create_alert_policies()
    >>> policies.can_create_alert(alert).allowed
    True
"""

from sensory_alerts.policy.engine import (
    AlertPolicies,
    PolicyAuditEntry,
    PolicyDecision,
    ThrottleDecision,
    apply_severity_cap,
    calculate_dedupe_key,
    create_alert_policies,
    deduplicate_alerts,
)
from sensory_alerts.policy.quiet_hours import is_within_quiet_hours
from sensory_alerts.policy.state import (
    CreatedAlertRecord,
    PolicyState,
    ThrottleEntry,
    create_policy_state,
)

__all__ = [
    # Engine
    "AlertPolicies",
    "PolicyAuditEntry",
    "PolicyDecision",
    "ThrottleDecision",
    "apply_severity_cap",
    "calculate_dedupe_key",
    "create_alert_policies",
    "deduplicate_alerts",
    # Quiet hours
    "is_within_quiet_hours",
    # State
    "CreatedAlertRecord",
    "PolicyState",
    "ThrottleEntry",
    "create_policy_state",
]
