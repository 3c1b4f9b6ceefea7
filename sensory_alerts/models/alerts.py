"""
Alert data models for the student alerting engine.

This module defines the alert event schema and the value objects attached to
it: provenance references, UI actions, metadata and governance flags.

Models:
    AlertKind: What the alert is about (safety, behavior_spike, ...)
    AlertSeverity: Severity levels (critical, important, moderate, low)
    AlertStatus: Lifecycle states (new through resolved/dismissed)
    SourceType: Category of evidence behind an alert
    AlertActionKind: Kinds of actions offered on an alert
    SourceRef: A single piece of evidence with optional confidence
    AlertAction: An action affordance shown with an alert
    AlertMetadata: Domain-specific extras (summary, sparkline, context key)
    GovernanceStatus: Flags set by the policy engine
    AlertEvent: A candidate or confirmed alert

Field names are snake_case. camelCase aliases (``studentId``, ``createdAt``)
are accepted on input so records produced by the storage layer validate
as-is.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class InvalidStatusTransition(ValueError):
    """Raised when an alert is moved to a status its current one cannot reach."""


class AlertKind(str, Enum):
    """
    Alert kinds.

    Attributes:
        SAFETY: Possible safety concern.
        BEHAVIOR_SPIKE: Sudden rise in a tracked behavior or emotion.
        CONTEXT_ASSOCIATION: Behavior associated with an environmental context.
        INTERVENTION_DUE: A planned intervention needs attention.
        DATA_QUALITY: Tracking data is sparse or inconsistent.
        IMPROVEMENT_NOTED: Positive change relative to baseline.
        PATTERN_DETECTED: Recurring pattern found by the pattern engine.
    """

    SAFETY = "safety"
    BEHAVIOR_SPIKE = "behavior_spike"
    CONTEXT_ASSOCIATION = "context_association"
    INTERVENTION_DUE = "intervention_due"
    DATA_QUALITY = "data_quality"
    IMPROVEMENT_NOTED = "improvement_noted"
    PATTERN_DETECTED = "pattern_detected"


class AlertSeverity(str, Enum):
    """
    Alert severity levels.

    Attributes:
        CRITICAL: Needs attention now.
        IMPORTANT: Needs attention today.
        MODERATE: Worth reviewing.
        LOW: Informational.
    """

    CRITICAL = "critical"
    IMPORTANT = "important"
    MODERATE = "moderate"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more severe (critical=4, low=1)."""
        return _SEVERITY_RANK[self]

    def is_at_least(self, other: "AlertSeverity") -> bool:
        """Check if this severity ranks at or above ``other``."""
        return self.rank >= other.rank


_SEVERITY_RANK: Dict[AlertSeverity, int] = {
    AlertSeverity.CRITICAL: 4,
    AlertSeverity.IMPORTANT: 3,
    AlertSeverity.MODERATE: 2,
    AlertSeverity.LOW: 1,
}


class AlertStatus(str, Enum):
    """
    Alert lifecycle states.

    Alerts progress new -> acknowledged -> in_progress -> resolved, and can
    leave the main path to snoozed or dismissed.
    """

    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are possible."""
        return not VALID_STATUS_TRANSITIONS[self]

    def can_transition_to(self, target: "AlertStatus") -> bool:
        """Check if ``target`` is reachable from this status in one step."""
        return target in VALID_STATUS_TRANSITIONS[self]


VALID_STATUS_TRANSITIONS: Dict[AlertStatus, frozenset] = {
    AlertStatus.NEW: frozenset(
        {
            AlertStatus.ACKNOWLEDGED,
            AlertStatus.IN_PROGRESS,
            AlertStatus.RESOLVED,
            AlertStatus.SNOOZED,
            AlertStatus.DISMISSED,
        }
    ),
    AlertStatus.ACKNOWLEDGED: frozenset(
        {
            AlertStatus.IN_PROGRESS,
            AlertStatus.RESOLVED,
            AlertStatus.SNOOZED,
            AlertStatus.DISMISSED,
        }
    ),
    AlertStatus.IN_PROGRESS: frozenset(
        {AlertStatus.RESOLVED, AlertStatus.SNOOZED, AlertStatus.DISMISSED}
    ),
    AlertStatus.RESOLVED: frozenset(),
    AlertStatus.SNOOZED: frozenset(
        {AlertStatus.IN_PROGRESS, AlertStatus.RESOLVED, AlertStatus.DISMISSED}
    ),
    AlertStatus.DISMISSED: frozenset(),
}


class SourceType(str, Enum):
    """Category of evidence contributing to a detector result or alert."""

    PATTERN_ENGINE = "pattern_engine"
    TEACHER_ACTION = "teacher_action"
    SENSOR = "sensor"
    MANUAL = "manual"
    BASELINE = "baseline"
    POLICY = "policy"


class AlertActionKind(str, Enum):
    """Kinds of actions an alert can offer."""

    ACKNOWLEDGE = "acknowledge"
    SNOOZE = "snooze"
    RESOLVE = "resolve"
    OPEN_DETAILS = "open_details"
    CUSTOM = "custom"


_MODEL_CONFIG = ConfigDict(
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class SourceRef(BaseModel):
    """
    Evidence contributing to a detector result or alert.

    An absent confidence means "unset", not zero.

    Attributes:
        type: Evidence category.
        id: Optional identifier of the source record.
        label: Short display label.
        name: Optional longer name.
        confidence: Confidence in this piece of evidence, in [0, 1].
        evidence: Free-text description.
        parameters: Opaque key/value parameters.
        details: Structured payload (e.g. detector statistics).

    Example:
        >>> ref = SourceRef(type=SourceType.SENSOR, label="noise", confidence=0.8)
    """

    model_config = ConfigDict(frozen=True, **_MODEL_CONFIG)

    type: SourceType = Field(..., description="Evidence category")
    id: Optional[str] = Field(default=None, description="Source record identifier")
    label: Optional[str] = Field(default=None, description="Display label")
    name: Optional[str] = Field(default=None, description="Longer name")
    confidence: Optional[float] = Field(
        default=None,
        description="Confidence in this evidence (absent means unset)",
        ge=0.0,
        le=1.0,
        allow_inf_nan=False,
    )
    evidence: Optional[str] = Field(default=None, description="Free-text evidence")
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque parameters",
    )
    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Structured payload for audit and display",
    )


class AlertAction(BaseModel):
    """An action affordance rendered with an alert."""

    model_config = ConfigDict(frozen=True, **_MODEL_CONFIG)

    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    kind: AlertActionKind
    data: Dict[str, Any] = Field(default_factory=dict)


class AlertMetadata(BaseModel):
    """
    Domain-specific extras attached to an alert.

    Unknown keys are kept so detectors can attach their own fields.

    Attributes:
        label: Display label.
        context_key: Context used when deriving the dedupe key.
        summary: Short human-readable summary.
        spark_values: Sparkline values.
        spark_timestamps: Sparkline timestamps (epoch milliseconds).
        score: Detector score that produced the alert.
        threshold_overrides: Per-detector threshold overrides in effect.
        detector_types: Detectors that contributed.
    """

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    label: Optional[str] = None
    context_key: Optional[str] = None
    summary: Optional[str] = None
    spark_values: List[float] = Field(default_factory=list)
    spark_timestamps: List[int] = Field(default_factory=list)
    score: Optional[float] = None
    threshold_overrides: Dict[str, float] = Field(default_factory=dict)
    detector_types: List[str] = Field(default_factory=list)


class GovernanceStatus(BaseModel):
    """
    Flags set by the policy engine on an alert.

    Attributes:
        throttled: Suppressed by exponential backoff.
        deduplicated: Collapsed into another alert.
        has_duplicates: Representative of a group of near-duplicates.
        suppressed_count: Number of near-duplicates folded into this alert.
        snoozed: Matching snooze active.
        quiet_hours: Created during quiet hours.
        cap_exceeded: Daily cap for its severity already reached.
        severity_capped: Severity lowered to the per-kind maximum.
        next_eligible_at: When a throttled key may fire again.
    """

    model_config = ConfigDict(frozen=True, **_MODEL_CONFIG)

    throttled: bool = False
    deduplicated: bool = False
    has_duplicates: bool = False
    suppressed_count: int = Field(default=0, ge=0)
    snoozed: bool = False
    quiet_hours: bool = False
    cap_exceeded: bool = False
    severity_capped: bool = False
    next_eligible_at: Optional[datetime] = None

    def merge(self, **updates: Any) -> "GovernanceStatus":
        """
        Return a copy with the given flags overriding the current ones.

        Args:
            **updates: Field values to set; ``None`` values are ignored.

        Returns:
            GovernanceStatus: Updated copy.
        """
        return self.model_copy(
            update={k: v for k, v in updates.items() if v is not None}
        )


class AlertEvent(BaseModel):
    """
    A candidate or confirmed alert for one student.

    Instances are treated as values: lifecycle helpers and policy functions
    return updated copies and never mutate the original.

    Attributes:
        id: Unique identifier.
        student_id: Student the alert concerns.
        kind: Alert kind.
        severity: Alert severity.
        status: Lifecycle status.
        confidence: Detection confidence in [0, 1].
        created_at: Creation instant (naive values are taken as UTC).
        dedupe_key: Explicit key for throttling and deduplication.
        sources: Ordered evidence references.
        actions: Ordered action affordances.
        metadata: Domain-specific extras.
        governance: Flags set by the policy engine.
        acknowledged_at: When acknowledged.
        resolved_at: When resolved.
        snoozed_until: End of the current snooze window.
        resolution_notes: Free-text notes recorded on resolution.

    Example:
        >>> alert = AlertEvent(
        ...     id="alert_1",
        ...     student_id="s1",
        ...     kind=AlertKind.BEHAVIOR_SPIKE,
        ...     severity=AlertSeverity.IMPORTANT,
        ...     confidence=0.82,
        ...     created_at="2024-03-04T10:15:00Z",
        ... )
        >>> alert.acknowledge().status
        <AlertStatus.ACKNOWLEDGED: 'acknowledged'>
    """

    model_config = _MODEL_CONFIG

    id: str = Field(..., min_length=1)
    student_id: str = Field(..., min_length=1)
    kind: AlertKind
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.NEW
    confidence: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    created_at: datetime
    dedupe_key: Optional[str] = None
    sources: List[SourceRef] = Field(default_factory=list)
    actions: List[AlertAction] = Field(default_factory=list)
    metadata: Optional[AlertMetadata] = None
    governance: Optional[GovernanceStatus] = None

    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None
    resolution_notes: Optional[str] = None

    @field_validator("created_at", "acknowledged_at", "resolved_at", "snoozed_until")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Attach UTC to naive timestamps so instants compare consistently."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def context_key(self) -> str:
        """Context used for dedupe keys; ``"na"`` when none is recorded."""
        if self.metadata is None:
            return "na"
        if self.metadata.context_key:
            return self.metadata.context_key
        extras = self.metadata.model_extra or {}
        class_period = extras.get("class_period") or extras.get("classPeriod")
        return str(class_period) if class_period else "na"

    @property
    def governance_or_default(self) -> GovernanceStatus:
        """Governance flags, or an all-clear status if none were set."""
        return self.governance or GovernanceStatus()

    def is_active(self, at: Optional[datetime] = None) -> bool:
        """
        Check if the alert belongs in active views at ``at``.

        Resolved and dismissed alerts are retired. Snoozed alerts are hidden
        until their snooze window elapses.

        Args:
            at: Instant to evaluate (defaults to now, UTC).

        Returns:
            bool: True if the alert should be shown.
        """
        if self.status in (AlertStatus.RESOLVED, AlertStatus.DISMISSED):
            return False
        if self.status == AlertStatus.SNOOZED:
            if self.snoozed_until is None:
                return False
            now = at or datetime.now(timezone.utc)
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            return now >= self.snoozed_until
        return True

    def transition(
        self,
        target: AlertStatus,
        **updates: Any,
    ) -> "AlertEvent":
        """
        Move the alert to ``target``.

        Args:
            target: The new status.
            **updates: Extra fields to set on the copy.

        Returns:
            AlertEvent: Updated copy.

        Raises:
            InvalidStatusTransition: If ``target`` is not reachable.
        """
        if not self.status.can_transition_to(target):
            raise InvalidStatusTransition(
                f"Cannot move alert {self.id} from {self.status.value} to {target.value}"
            )
        return self.model_copy(update={"status": target, **updates})

    def acknowledge(self, timestamp: Optional[datetime] = None) -> "AlertEvent":
        """Mark the alert as acknowledged."""
        return self.transition(
            AlertStatus.ACKNOWLEDGED,
            acknowledged_at=timestamp or datetime.now(timezone.utc),
        )

    def start(self) -> "AlertEvent":
        """Mark the alert as being worked on."""
        return self.transition(AlertStatus.IN_PROGRESS)

    def resolve(
        self,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "AlertEvent":
        """Resolve the alert, optionally recording notes."""
        return self.transition(
            AlertStatus.RESOLVED,
            resolved_at=timestamp or datetime.now(timezone.utc),
            resolution_notes=notes,
        )

    def snooze(
        self,
        hours: float = 24,
        timestamp: Optional[datetime] = None,
    ) -> "AlertEvent":
        """Snooze the alert for ``hours`` starting at ``timestamp``."""
        start = timestamp or datetime.now(timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return self.transition(
            AlertStatus.SNOOZED,
            snoozed_until=start + timedelta(hours=hours),
        )

    def dismiss(self) -> "AlertEvent":
        """Dismiss the alert."""
        return self.transition(AlertStatus.DISMISSED)
