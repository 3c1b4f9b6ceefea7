"""
Alert governance policies.

This module provides the AlertPolicies class which decides whether a
candidate alert may be created and annotates alerts with governance flags.
Detectors produce candidates freely; the policies here keep teachers from
being flooded.

Key Features:
    - Stable dedupe keys per (student, kind, context)
    - Snooze and "don't show again" windows
    - Quiet hours with a severity override
    - Per-severity daily caps and per-kind severity ceilings
    - Exponential backoff throttling per dedupe key
    - Near-duplicate collapsing within a time window
    - Bounded per-student audit trail of every gate decision

Note:
    Policy methods never raise on bad settings and never mutate input
    alerts; annotated alerts are returned as copies.

Example:
    >>> policies = AlertPolicies()
    >>> decision = policies.can_create_alert(alert, settings)
    >>> if decision.allowed:
    ...     policies.record_alert_created(alert, settings)
"""

import hashlib
import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, Field

from sensory_alerts.config.models import AlertSettings
from sensory_alerts.config.settings import DEFAULT_ALERT_SETTINGS, validate_alert_settings
from sensory_alerts.models.alerts import AlertEvent, AlertSeverity, GovernanceStatus
from sensory_alerts.policy.quiet_hours import is_within_quiet_hours, local_time
from sensory_alerts.policy.state import CreatedAlertRecord, PolicyState, ThrottleEntry

logger = structlog.get_logger(__name__)


DEFAULT_DEDUPE_WINDOW = timedelta(hours=1)
MAX_THROTTLE_EXPONENT = 10

REASON_SNOOZED = "snoozed"
REASON_QUIET_HOURS = "quiet_hours"
REASON_CAP_EXCEEDED = "cap_exceeded"
REASON_THROTTLED = "throttled"

Clock = Callable[[], datetime]
SettingsArg = Union[AlertSettings, Mapping[str, Any], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(at: datetime) -> datetime:
    return at if at.tzinfo is not None else at.replace(tzinfo=timezone.utc)


class PolicyDecision(BaseModel):
    """
    Outcome of the creation gate for one alert.

    Attributes:
        allowed: Whether the alert may be created.
        reasons: Why it was blocked (empty when allowed).
        dedupe_key: Key the decision was made under.
        governance: Flags to attach to the alert.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    allowed: bool
    reasons: List[str] = Field(default_factory=list)
    dedupe_key: str
    governance: GovernanceStatus = Field(default_factory=GovernanceStatus)


class ThrottleDecision(BaseModel):
    """Whether a dedupe key is currently throttled."""

    model_config = {"frozen": True, "extra": "forbid"}

    throttled: bool
    attempts: int = 0
    next_eligible_at: Optional[datetime] = None


class PolicyAuditEntry(BaseModel):
    """One recorded gate decision."""

    model_config = {"frozen": True, "extra": "forbid"}

    timestamp: datetime
    alert_id: str
    student_id: str
    kind: str
    severity: str
    dedupe_key: str
    allowed: bool
    reasons: List[str] = Field(default_factory=list)


# =============================================================================
# PURE FUNCTIONS
# =============================================================================


def calculate_dedupe_key(alert: AlertEvent) -> str:
    """
    Get the dedupe key for an alert.

    An explicit ``dedupe_key`` wins. Otherwise the key is an md5 digest of
    ``student_id|kind|context_key``.

    Example:
        >>> calculate_dedupe_key(alert) == calculate_dedupe_key(alert.model_copy())
        True
    """
    if alert.dedupe_key:
        return alert.dedupe_key
    raw = f"{alert.student_id}|{alert.kind.value}|{alert.context_key}"
    return hashlib.md5(raw.encode()).hexdigest()


def apply_severity_cap(alert: AlertEvent, settings: AlertSettings) -> AlertEvent:
    """
    Lower an alert's severity to its kind's ceiling.

    Returns:
        AlertEvent: The alert unchanged, or a copy with the capped severity
        and ``severity_capped`` set.
    """
    ceiling = settings.max_severity_for(alert.kind)
    if ceiling is None or alert.severity.rank <= ceiling.rank:
        return alert
    return alert.model_copy(
        update={
            "severity": ceiling,
            "governance": alert.governance_or_default.merge(severity_capped=True),
        }
    )


def deduplicate_alerts(
    alerts: Sequence[AlertEvent],
    window: Union[timedelta, float] = DEFAULT_DEDUPE_WINDOW,
) -> List[AlertEvent]:
    """
    Collapse near-duplicate alerts.

    Alerts sharing a dedupe key are clustered in time order; a cluster is
    anchored at its earliest alert and takes members up to ``window`` after
    it. Each cluster is replaced by its most severe member (the earliest on
    ties), stamped with the cluster's earliest ``created_at`` and with
    ``has_duplicates`` and the accumulated ``suppressed_count``. Singleton
    clusters pass through unchanged.

    Running the function on its own output returns the same list.

    Args:
        alerts: Alerts in any order.
        window: Clustering window measured from the cluster anchor, as a
            timedelta or in milliseconds.

    Returns:
        List[AlertEvent]: One alert per cluster, in first-seen order.
    """
    if not isinstance(window, timedelta):
        window = timedelta(milliseconds=window)

    by_key: Dict[str, List[int]] = {}
    for index, alert in enumerate(alerts):
        by_key.setdefault(calculate_dedupe_key(alert), []).append(index)

    clusters: List[List[int]] = []
    for indices in by_key.values():
        ordered = sorted(indices, key=lambda i: (alerts[i].created_at, i))
        current: List[int] = []
        for i in ordered:
            if current and alerts[i].created_at - alerts[current[0]].created_at > window:
                clusters.append(current)
                current = []
            current.append(i)
        if current:
            clusters.append(current)

    clusters.sort(key=min)

    result: List[AlertEvent] = []
    for cluster in clusters:
        if len(cluster) == 1:
            result.append(alerts[cluster[0]])
            continue

        members = [alerts[i] for i in cluster]
        representative = members[0]
        for member in members[1:]:
            if member.severity.rank > representative.severity.rank:
                representative = member

        suppressed = len(members) - 1 + sum(
            m.governance_or_default.suppressed_count for m in members
        )
        governance = representative.governance_or_default.merge(
            has_duplicates=True,
            suppressed_count=suppressed,
        )
        result.append(
            representative.model_copy(
                update={"created_at": members[0].created_at, "governance": governance}
            )
        )
        logger.debug(
            "alerts_deduplicated",
            dedupe_key=calculate_dedupe_key(representative),
            representative_id=representative.id,
            suppressed_count=suppressed,
        )

    return result


# =============================================================================
# POLICY ENGINE
# =============================================================================


class AlertPolicies:
    """
    Governs alert creation for all students.

    Responsibilities:
    - Gate candidate alerts (snooze, quiet hours, caps, optional throttle)
    - Record created alerts for caps and throttling
    - Manage snoozes
    - Annotate batches (quiet hours, caps, severity ceilings, duplicates)
    - Keep an audit trail of gate decisions

    Attributes:
        state: Mutable store for snoozes, throttles, history and audit.
        clock: Callable returning the current instant.
        default_settings: Settings used when none are passed.

    Example:
        >>> policies = AlertPolicies(clock=lambda: datetime(2024, 3, 4, 12, tzinfo=timezone.utc))
        >>> policies.snooze("s1", "key", hours=2)
        datetime.datetime(2024, 3, 4, 14, 0, tzinfo=datetime.timezone.utc)
    """

    def __init__(
        self,
        state: Optional[PolicyState] = None,
        clock: Optional[Clock] = None,
        default_settings: Optional[AlertSettings] = None,
    ) -> None:
        self.state = state if state is not None else PolicyState()
        self.clock = clock or _utc_now
        self.default_settings = default_settings or DEFAULT_ALERT_SETTINGS

        logger.debug("alert_policies_initialized")

    def _now(self) -> datetime:
        return _aware(self.clock())

    def _settings(self, settings: SettingsArg) -> AlertSettings:
        if settings is None:
            return self.default_settings
        if isinstance(settings, AlertSettings):
            return settings
        result = validate_alert_settings(settings)
        if not result.is_valid:
            logger.warning("alert_settings_normalized", errors=result.errors)
        return result.normalized

    def _day_of(self, at: datetime, settings: AlertSettings) -> date:
        if settings.quiet_hours is not None:
            return local_time(at, settings.quiet_hours).date()
        return at.date()

    def _prune_state(self, alert: AlertEvent, at: datetime, settings: AlertSettings) -> None:
        # Caps only look at the day being evaluated, so older records can go.
        oldest_day = min(self._day_of(at, settings), self._day_of(alert.created_at, settings))
        self.state.prune_expired(at, oldest_day)

    # ---------------------------------------------------------------------
    # Dedupe keys
    # ---------------------------------------------------------------------

    def calculate_dedupe_key(self, alert: AlertEvent) -> str:
        return calculate_dedupe_key(alert)

    # ---------------------------------------------------------------------
    # Snoozes
    # ---------------------------------------------------------------------

    def snooze(
        self,
        student_id: str,
        dedupe_key: str,
        hours: Optional[float] = None,
        settings: SettingsArg = None,
    ) -> datetime:
        """
        Snooze a dedupe key for a student.

        Args:
            student_id: Student identifier.
            dedupe_key: Key to snooze.
            hours: Snooze length (default from snooze preferences).
            settings: Settings providing the default length.

        Returns:
            datetime: End of the snooze window.
        """
        if hours is None:
            hours = self._settings(settings).snooze.default_hours
        until = self._now() + timedelta(hours=hours)
        self.state.set_snooze(student_id, dedupe_key, until)
        logger.info(
            "alert_snoozed",
            student_id=student_id,
            dedupe_key=dedupe_key,
            until=until.isoformat(),
        )
        return until

    def dont_show_for_days(
        self,
        student_id: str,
        dedupe_key: str,
        days: Optional[float] = None,
        settings: SettingsArg = None,
    ) -> datetime:
        """Snooze a dedupe key for days (default from snooze preferences)."""
        if days is None:
            days = self._settings(settings).snooze.dont_show_again_days
        return self.snooze(student_id, dedupe_key, hours=days * 24)

    def is_snoozed(
        self,
        student_id: str,
        dedupe_key: str,
        at: Optional[datetime] = None,
    ) -> bool:
        until = self.state.get_snooze(student_id, dedupe_key)
        if until is None:
            return False
        at = _aware(at) if at is not None else self._now()
        if at >= until:
            self.state.clear_snooze(student_id, dedupe_key)
            return False
        return True

    def clear_snooze(self, student_id: str, dedupe_key: str) -> bool:
        cleared = self.state.clear_snooze(student_id, dedupe_key)
        if cleared:
            logger.info("snooze_cleared", student_id=student_id, dedupe_key=dedupe_key)
        return cleared

    # ---------------------------------------------------------------------
    # Quiet hours
    # ---------------------------------------------------------------------

    def is_in_quiet_hours(self, at: datetime, settings: SettingsArg = None) -> bool:
        """Check if ``at`` falls inside the configured quiet hours."""
        quiet = self._settings(settings).quiet_hours
        return quiet is not None and is_within_quiet_hours(_aware(at), quiet)

    def apply_quiet_hours(
        self,
        alerts: Iterable[AlertEvent],
        settings: SettingsArg = None,
    ) -> List[AlertEvent]:
        """
        Annotate alerts created during quiet hours.

        Returns:
            List[AlertEvent]: Copies with ``quiet_hours`` set where it applies.
        """
        normalized = self._settings(settings)
        result = []
        for alert in alerts:
            if self.is_in_quiet_hours(alert.created_at, normalized):
                alert = alert.model_copy(
                    update={"governance": alert.governance_or_default.merge(quiet_hours=True)}
                )
            result.append(alert)
        return result

    # ---------------------------------------------------------------------
    # Caps
    # ---------------------------------------------------------------------

    def get_today_counts(
        self,
        student_id: str,
        at: Optional[datetime] = None,
        settings: SettingsArg = None,
    ) -> Dict[AlertSeverity, int]:
        """
        Count alerts created for a student on the calendar day of ``at``.

        Returns:
            Dict[AlertSeverity, int]: Counts per severity.
        """
        at = _aware(at) if at is not None else self._now()
        return self.state.counts_for_day(student_id, self._day_of(at, self._settings(settings)))

    def _history_counts(
        self,
        alert: AlertEvent,
        history: Iterable[AlertEvent],
        settings: AlertSettings,
    ) -> Dict[AlertSeverity, int]:
        day = self._day_of(alert.created_at, settings)
        counts = {severity: 0 for severity in AlertSeverity}
        for past in history:
            if past.student_id == alert.student_id and past.id != alert.id and (
                self._day_of(past.created_at, settings) == day
            ):
                counts[past.severity] += 1
        return counts

    def enforce_cap_limits(
        self,
        alerts: Sequence[AlertEvent],
        settings: SettingsArg = None,
        existing_counts: Optional[Mapping[AlertSeverity, int]] = None,
    ) -> List[AlertEvent]:
        """
        Mark alerts that exceed the daily caps.

        Alerts are counted in time order per student and day, starting from
        ``existing_counts`` (or the state's record of created alerts). The
        output keeps the input order.

        Returns:
            List[AlertEvent]: Copies with ``cap_exceeded`` set where a cap
            was already reached.
        """
        normalized = self._settings(settings)
        counts: Dict[tuple, Dict[AlertSeverity, int]] = {}
        exceeded = set()

        order = sorted(range(len(alerts)), key=lambda i: (alerts[i].created_at, i))
        for i in order:
            alert = alerts[i]
            bucket_key = (alert.student_id, self._day_of(alert.created_at, normalized))
            bucket = counts.get(bucket_key)
            if bucket is None:
                if existing_counts is not None:
                    bucket = {s: int(existing_counts.get(s, 0)) for s in AlertSeverity}
                else:
                    bucket = self.state.counts_for_day(*bucket_key)
                counts[bucket_key] = bucket

            limit = normalized.daily_caps.limit_for(alert.severity)
            if limit is not None and bucket[alert.severity] >= limit:
                exceeded.add(i)
            else:
                bucket[alert.severity] += 1

        result = []
        for i, alert in enumerate(alerts):
            if i in exceeded:
                alert = alert.model_copy(
                    update={"governance": alert.governance_or_default.merge(cap_exceeded=True)}
                )
            result.append(alert)
        return result

    def apply_severity_cap(self, alert: AlertEvent, settings: SettingsArg = None) -> AlertEvent:
        return apply_severity_cap(alert, self._settings(settings))

    # ---------------------------------------------------------------------
    # Throttling
    # ---------------------------------------------------------------------

    def get_throttle_delay(
        self,
        severity: AlertSeverity,
        attempts: int,
        settings: SettingsArg = None,
    ) -> timedelta:
        """
        Backoff delay after ``attempts`` alerts on one key.

        delay = min(max_delay, base ** min(10, attempts)) seconds
        """
        throttle = self._settings(settings).throttle
        exponent = min(MAX_THROTTLE_EXPONENT, max(0, attempts))
        seconds = min(throttle.max_delay_for(severity), throttle.base_for(severity) ** exponent)
        return timedelta(seconds=seconds)

    def should_throttle(
        self,
        alert: AlertEvent,
        at: Optional[datetime] = None,
    ) -> ThrottleDecision:
        """
        Check if the alert's dedupe key is inside its backoff delay.

        An elapsed schedule is cleared, so the backoff starts over.
        """
        dedupe_key = calculate_dedupe_key(alert)
        entry = self.state.get_throttle(alert.student_id, dedupe_key)
        at = _aware(at) if at is not None else self._now()
        if entry.next_eligible_at is not None and at >= entry.next_eligible_at:
            self.state.reset_throttle(alert.student_id, dedupe_key)
            return ThrottleDecision(throttled=False, attempts=0, next_eligible_at=None)
        throttled = entry.next_eligible_at is not None
        return ThrottleDecision(
            throttled=throttled,
            attempts=entry.attempts,
            next_eligible_at=entry.next_eligible_at,
        )

    def reset_throttle(self, student_id: str, dedupe_key: str) -> None:
        self.state.reset_throttle(student_id, dedupe_key)
        logger.info("throttle_reset", student_id=student_id, dedupe_key=dedupe_key)

    def record_alert_created(self, alert: AlertEvent, settings: SettingsArg = None) -> datetime:
        """
        Record that an alert was created.

        Counts the alert toward its day's caps and schedules the next time
        its dedupe key may fire.

        Returns:
            datetime: When the dedupe key becomes eligible again.
        """
        normalized = self._settings(settings)
        dedupe_key = calculate_dedupe_key(alert)

        self._prune_state(alert, self._now(), normalized)
        self.state.record_created(
            alert.student_id,
            CreatedAlertRecord(
                alert_id=alert.id,
                dedupe_key=dedupe_key,
                severity=alert.severity,
                created_at=alert.created_at,
                day=self._day_of(alert.created_at, normalized),
            ),
        )

        entry = self.state.get_throttle(alert.student_id, dedupe_key)
        attempts = entry.attempts + 1
        next_eligible_at = alert.created_at + self.get_throttle_delay(
            alert.severity, attempts, normalized
        )
        self.state.set_throttle(
            alert.student_id,
            dedupe_key,
            ThrottleEntry(attempts=attempts, next_eligible_at=next_eligible_at),
        )

        logger.debug(
            "alert_created_recorded",
            alert_id=alert.id,
            student_id=alert.student_id,
            attempts=attempts,
            next_eligible_at=next_eligible_at.isoformat(),
        )
        return next_eligible_at

    # ---------------------------------------------------------------------
    # Gate
    # ---------------------------------------------------------------------

    def can_create_alert(
        self,
        alert: AlertEvent,
        settings: SettingsArg = None,
        history: Optional[Iterable[AlertEvent]] = None,
        at: Optional[datetime] = None,
        enforce_throttle: bool = False,
    ) -> PolicyDecision:
        """
        Decide whether a candidate alert may be created.

        Blocks when the (student, dedupe key) is snoozed at ``at``, when the
        alert was created during quiet hours with a severity below the quiet
        hours override, when the daily cap for its severity is reached, and
        (only with ``enforce_throttle``) when its key is throttled. The
        decision is appended to the student's audit trail.

        Args:
            alert: Candidate alert.
            settings: Settings model or raw mapping (normalized).
            history: Alerts already created; defaults to the state's record.
            at: Evaluation instant for snoozes and throttling (default now).
            enforce_throttle: Also apply exponential backoff.

        Returns:
            PolicyDecision: Whether creation is allowed, why not, and the
            governance flags to attach.
        """
        normalized = self._settings(settings)
        at = _aware(at) if at is not None else self._now()
        dedupe_key = calculate_dedupe_key(alert)
        self._prune_state(alert, at, normalized)
        reasons: List[str] = []
        flags: Dict[str, Any] = {}

        if self.is_snoozed(alert.student_id, dedupe_key, at):
            reasons.append(REASON_SNOOZED)
            flags["snoozed"] = True

        quiet = normalized.quiet_hours
        if quiet is not None and is_within_quiet_hours(alert.created_at, quiet):
            flags["quiet_hours"] = True
            if not alert.severity.is_at_least(quiet.override_severity):
                reasons.append(REASON_QUIET_HOURS)

        if history is not None:
            counts = self._history_counts(alert, history, normalized)
        else:
            counts = self.state.counts_for_day(
                alert.student_id, self._day_of(alert.created_at, normalized)
            )
        limit = normalized.daily_caps.limit_for(alert.severity)
        if limit is not None and counts[alert.severity] >= limit:
            reasons.append(REASON_CAP_EXCEEDED)
            flags["cap_exceeded"] = True

        if enforce_throttle:
            throttle = self.should_throttle(alert, at)
            if throttle.throttled:
                reasons.append(REASON_THROTTLED)
                flags["throttled"] = True
                flags["next_eligible_at"] = throttle.next_eligible_at

        decision = PolicyDecision(
            allowed=not reasons,
            reasons=reasons,
            dedupe_key=dedupe_key,
            governance=alert.governance_or_default.merge(**flags),
        )
        self.state.append_audit(
            alert.student_id,
            PolicyAuditEntry(
                timestamp=at,
                alert_id=alert.id,
                student_id=alert.student_id,
                kind=alert.kind.value,
                severity=alert.severity.value,
                dedupe_key=dedupe_key,
                allowed=decision.allowed,
                reasons=reasons,
            ),
        )

        if decision.allowed:
            logger.debug("alert_allowed_by_policy", alert_id=alert.id, student_id=alert.student_id)
        else:
            logger.info(
                "alert_blocked_by_policy",
                alert_id=alert.id,
                student_id=alert.student_id,
                dedupe_key=dedupe_key,
                reasons=reasons,
            )
        return decision

    # ---------------------------------------------------------------------
    # Deduplication
    # ---------------------------------------------------------------------

    def deduplicate_alerts(
        self,
        alerts: Sequence[AlertEvent],
        window: Optional[timedelta] = None,
        settings: SettingsArg = None,
    ) -> List[AlertEvent]:
        """Collapse near-duplicates; the window defaults to the settings'."""
        if window is None:
            window = timedelta(minutes=self._settings(settings).dedupe_window_minutes)
        return deduplicate_alerts(alerts, window)

    # ---------------------------------------------------------------------
    # Audit trail
    # ---------------------------------------------------------------------

    def get_audit_trail(
        self,
        student_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[PolicyAuditEntry]:
        """
        Most recent gate decisions, newest first.

        Args:
            student_id: Restrict to one student (default: everyone).
            limit: Maximum number of entries.
        """
        entries = sorted(
            reversed(self.state.audit_entries(student_id)),
            key=lambda e: e.timestamp,
            reverse=True,
        )
        return entries[: max(0, limit)]

    def clear_audit_trail(self, student_id: Optional[str] = None) -> None:
        self.state.clear_audit(student_id)
        logger.info("audit_trail_cleared", student_id=student_id)

    def export_audit_trail(self, student_id: Optional[str] = None) -> str:
        """Export the audit trail as a JSON array, oldest first."""
        entries = sorted(self.state.audit_entries(student_id), key=lambda e: e.timestamp)
        return json.dumps([e.model_dump(mode="json") for e in entries], indent=2)


def create_alert_policies(
    settings: Optional[AlertSettings] = None,
    state: Optional[PolicyState] = None,
    clock: Optional[Clock] = None,
) -> AlertPolicies:
    """
    Factory function to create an AlertPolicies.

    Args:
        settings: Default settings (the built-in defaults if not provided).
        state: State store (a fresh one if not provided).
        clock: Clock callable (UTC now if not provided).

    Returns:
        AlertPolicies: Configured policy engine.
    """
    policies = AlertPolicies(state=state, clock=clock, default_settings=settings)
    logger.info(
        "alert_policies_created",
        student_id=policies.default_settings.student_id,
        quiet_hours=policies.default_settings.quiet_hours is not None,
    )
    return policies
