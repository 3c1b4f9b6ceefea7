"""
In-process state for the alert policy engine.

The policy engine is otherwise a set of pure functions. Everything it has to
remember between calls (snoozes, throttle schedule, alerts created today and
the audit trail) lives in a PolicyState passed to it explicitly, so tests
and callers can create, inspect and discard state freely.

Key Features:
    - Snooze windows keyed by (student, dedupe key)
    - Throttle attempts and next-eligible times per (student, dedupe key)
    - Created-alert history for daily cap counts
    - Bounded per-student audit trail

Note:
    PolicyState is not thread-safe. Callers serialise access.

Example:
    >>> state = PolicyState()
    >>> state.set_snooze("s1", "key", datetime(2024, 3, 4, 12, tzinfo=timezone.utc))
    >>> state.get_snooze("s1", "key")
    datetime.datetime(2024, 3, 4, 12, 0, tzinfo=datetime.timezone.utc)
"""

from collections import deque
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Deque, Dict, List, Optional, Tuple

import structlog

from sensory_alerts.models.alerts import AlertSeverity

logger = structlog.get_logger(__name__)

MAX_AUDIT_ENTRIES = 200

StateKey = Tuple[str, str]


@dataclass(frozen=True)
class CreatedAlertRecord:
    """An alert that was actually created, kept for cap counting."""

    alert_id: str
    dedupe_key: str
    severity: AlertSeverity
    created_at: datetime
    day: date


@dataclass
class ThrottleEntry:
    """Throttle bookkeeping for one (student, dedupe key)."""

    attempts: int = 0
    next_eligible_at: Optional[datetime] = None


class PolicyState:
    """
    Mutable store behind AlertPolicies.

    Attributes are private; use the accessor methods so the store can be
    swapped for a persistent implementation with the same interface.
    """

    def __init__(self, max_audit_entries: int = MAX_AUDIT_ENTRIES) -> None:
        self._snoozes: Dict[StateKey, datetime] = {}
        self._throttles: Dict[StateKey, ThrottleEntry] = {}
        self._created: Dict[str, List[CreatedAlertRecord]] = {}
        self._audit: Dict[str, Deque] = {}
        self._max_audit_entries = max_audit_entries

        logger.debug("policy_state_initialized", max_audit_entries=max_audit_entries)

    # ---------------------------------------------------------------------
    # Snoozes
    # ---------------------------------------------------------------------

    def set_snooze(self, student_id: str, dedupe_key: str, until: datetime) -> None:
        """Record a snooze window ending at ``until``."""
        if until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        self._snoozes[(student_id, dedupe_key)] = until

    def get_snooze(self, student_id: str, dedupe_key: str) -> Optional[datetime]:
        """Get the end of the snooze window, if any."""
        return self._snoozes.get((student_id, dedupe_key))

    def clear_snooze(self, student_id: str, dedupe_key: str) -> bool:
        """
        Remove a snooze.

        Returns:
            bool: True if a snooze was removed.
        """
        return self._snoozes.pop((student_id, dedupe_key), None) is not None

    # ---------------------------------------------------------------------
    # Throttling
    # ---------------------------------------------------------------------

    def get_throttle(self, student_id: str, dedupe_key: str) -> ThrottleEntry:
        """Get throttle bookkeeping (a fresh entry if none exists)."""
        return self._throttles.get((student_id, dedupe_key), ThrottleEntry())

    def set_throttle(self, student_id: str, dedupe_key: str, entry: ThrottleEntry) -> None:
        self._throttles[(student_id, dedupe_key)] = entry

    def reset_throttle(self, student_id: str, dedupe_key: str) -> None:
        self._throttles.pop((student_id, dedupe_key), None)

    # ---------------------------------------------------------------------
    # Created alerts
    # ---------------------------------------------------------------------

    def record_created(self, student_id: str, record: CreatedAlertRecord) -> None:
        """Remember a created alert for cap counting."""
        self._created.setdefault(student_id, []).append(record)

    def counts_for_day(self, student_id: str, day: date) -> Dict[AlertSeverity, int]:
        """
        Count created alerts per severity for a student on ``day``.

        Returns:
            Dict[AlertSeverity, int]: Counts for every severity (zeros
            included).
        """
        counts = {severity: 0 for severity in AlertSeverity}
        for record in self._created.get(student_id, []):
            if record.day == day:
                counts[record.severity] += 1
        return counts

    def prune_created(self, before: date) -> int:
        """
        Drop created-alert records older than ``before``.

        Returns:
            int: Number of records dropped.
        """
        dropped = 0
        empty: List[str] = []
        for student_id, records in self._created.items():
            kept = [r for r in records if r.day >= before]
            dropped += len(records) - len(kept)
            if kept:
                self._created[student_id] = kept
            else:
                empty.append(student_id)
        for student_id in empty:
            del self._created[student_id]
        if dropped:
            logger.debug("policy_history_pruned", dropped=dropped, before=before.isoformat())
        return dropped

    def prune_expired(self, at: datetime, before: date) -> int:
        """
        Drop snoozes and throttle schedules that have elapsed at ``at``, and
        created-alert records from days before ``before``.

        Returns:
            int: Number of entries dropped.
        """
        expired_snoozes = [key for key, until in self._snoozes.items() if until <= at]
        for key in expired_snoozes:
            del self._snoozes[key]

        elapsed_throttles = [
            key
            for key, entry in self._throttles.items()
            if entry.next_eligible_at is not None and entry.next_eligible_at <= at
        ]
        for key in elapsed_throttles:
            del self._throttles[key]

        dropped = len(expired_snoozes) + len(elapsed_throttles) + self.prune_created(before)
        if dropped:
            logger.debug("policy_state_pruned", dropped=dropped, at=at.isoformat())
        return dropped

    def size(self) -> Dict[str, int]:
        """Entry counts per store."""
        return {
            "snoozes": len(self._snoozes),
            "throttles": len(self._throttles),
            "created": sum(len(records) for records in self._created.values()),
            "audit": sum(len(trail) for trail in self._audit.values()),
        }

    # ---------------------------------------------------------------------
    # Audit trail
    # ---------------------------------------------------------------------

    def append_audit(self, student_id: str, entry: object) -> None:
        """Append an audit entry, keeping the newest ``max_audit_entries``."""
        trail = self._audit.get(student_id)
        if trail is None:
            trail = deque(maxlen=self._max_audit_entries)
            self._audit[student_id] = trail
        trail.append(entry)

    def audit_entries(self, student_id: Optional[str] = None) -> List:
        """Audit entries for one student, or for everyone, oldest first."""
        if student_id is not None:
            return list(self._audit.get(student_id, ()))
        entries: List = []
        for trail in self._audit.values():
            entries.extend(trail)
        return entries

    def clear_audit(self, student_id: Optional[str] = None) -> None:
        if student_id is None:
            self._audit.clear()
        else:
            self._audit.pop(student_id, None)

    def clear_all(self) -> None:
        """
        Clear all state.

        Used for testing or reset scenarios.
        """
        self._snoozes.clear()
        self._throttles.clear()
        self._created.clear()
        self._audit.clear()
        logger.info("policy_state_cleared")


def create_policy_state(max_audit_entries: int = MAX_AUDIT_ENTRIES) -> PolicyState:
    """
    Factory function to create a PolicyState.

    Returns:
        PolicyState: A new, empty state store.
    """
    return PolicyState(max_audit_entries=max_audit_entries)
