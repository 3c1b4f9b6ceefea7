"""
Data models for the alerting engine.

This package contains the Pydantic models for alerts and detector
inputs/outputs, plus validation predicates for untrusted records.

Example:
    >>> from sensory_alerts.models import AlertEvent, AlertKind, AlertSeverity
    >>> alert = AlertEvent(
    ...     id="alert_1",
    ...     student_id="s1",
    ...     kind=AlertKind.SAFETY,
    ...     severity=AlertSeverity.CRITICAL,
    ...     confidence=0.9,
    ...     created_at="2024-03-04T10:15:00Z",
    ... )
"""

from sensory_alerts.models.alerts import (
    VALID_STATUS_TRANSITIONS,
    AlertAction,
    AlertActionKind,
    AlertEvent,
    AlertKind,
    AlertMetadata,
    AlertSeverity,
    AlertStatus,
    GovernanceStatus,
    InvalidStatusTransition,
    SourceRef,
    SourceType,
)
from sensory_alerts.models.detector import (
    BetaPrior,
    BurstEvent,
    ContingencyTable,
    DetectorResult,
    TrendPoint,
)
from sensory_alerts.models.validation import (
    alert_event_errors,
    is_valid_alert_event,
    is_valid_detector_result,
    is_valid_source_ref,
    parse_alert_event,
)

__all__ = [
    # Enums
    "AlertKind",
    "AlertSeverity",
    "AlertStatus",
    "AlertActionKind",
    "SourceType",
    "VALID_STATUS_TRANSITIONS",
    # Alert models
    "AlertAction",
    "AlertEvent",
    "AlertMetadata",
    "GovernanceStatus",
    "SourceRef",
    "InvalidStatusTransition",
    # Detector models
    "BetaPrior",
    "BurstEvent",
    "ContingencyTable",
    "DetectorResult",
    "TrendPoint",
    # Validation
    "alert_event_errors",
    "is_valid_alert_event",
    "is_valid_detector_result",
    "is_valid_source_ref",
    "parse_alert_event",
]
