"""
Turn detector results into alert events.

The alert-creation layer calls ``alert_from_result`` with a DetectorResult
and the student context; the returned AlertEvent is a candidate that still
has to pass the policy gate.
"""

import hashlib
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sensory_alerts.models.alerts import (
    AlertAction,
    AlertActionKind,
    AlertEvent,
    AlertKind,
    AlertMetadata,
    AlertSeverity,
)
from sensory_alerts.models.detector import DetectorResult, TrendPoint

MAX_SPARK_POINTS = 50


def build_alert_id(
    student_id: str,
    kind: AlertKind,
    label: str,
    timestamp: datetime,
) -> str:
    """
    Build a deterministic alert id.

    The same student, kind, label and instant always map to the same id, so
    re-running a detector over the same data does not create new alerts.

    Example:
        >>> build_alert_id("s1", AlertKind.SAFETY, "x", datetime(2024, 1, 1)).startswith("alert_")
        True
    """
    base = f"{student_id}|{AlertKind(kind).value}|{label}|{timestamp.isoformat()}"
    return f"alert_{hashlib.md5(base.encode()).hexdigest()[:16]}"


def severity_from_score(score: float) -> AlertSeverity:
    """Map a 0-1 aggregate score to a severity tier."""
    if score >= 0.85:
        return AlertSeverity.CRITICAL
    if score >= 0.7:
        return AlertSeverity.IMPORTANT
    if score >= 0.55:
        return AlertSeverity.MODERATE
    return AlertSeverity.LOW


def default_actions(alert_id: str) -> List[AlertAction]:
    return [
        AlertAction(id=f"{alert_id}:ack", label="Acknowledge", kind=AlertActionKind.ACKNOWLEDGE),
        AlertAction(id=f"{alert_id}:snooze", label="Snooze", kind=AlertActionKind.SNOOZE),
        AlertAction(id=f"{alert_id}:details", label="Details", kind=AlertActionKind.OPEN_DETAILS),
    ]


def alert_from_result(
    result: DetectorResult,
    student_id: str,
    kind: AlertKind,
    label: str,
    created_at: Optional[datetime] = None,
    severity: Optional[AlertSeverity] = None,
    context_key: Optional[str] = None,
    series: Optional[Sequence[TrendPoint]] = None,
    detector_type: Optional[str] = None,
    threshold_overrides: Optional[Dict[str, float]] = None,
) -> AlertEvent:
    """
    Build a candidate alert from a detector result.

    Args:
        result: Detector output.
        student_id: Student the alert concerns.
        kind: Alert kind.
        label: Label used for the id and the summary.
        created_at: Creation instant (defaults to now, UTC).
        severity: Explicit severity; defaults to one derived from
            ``score * confidence``.
        context_key: Context recorded for dedupe keys.
        series: Optional series for the sparkline (most recent points kept).
        detector_type: Name of the detector that produced the result.
        threshold_overrides: Per-detector overrides in effect.

    Returns:
        AlertEvent: A new alert in status ``new``.
    """
    now = created_at or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    alert_id = build_alert_id(student_id, kind, label, now)
    level = severity or severity_from_score(result.score * result.confidence)

    spark = list(series or [])[-MAX_SPARK_POINTS:]
    metadata = AlertMetadata(
        label=label,
        context_key=context_key,
        summary=result.impact_hint or label,
        spark_values=[p.value for p in spark],
        spark_timestamps=[p.timestamp for p in spark],
        score=result.score,
        threshold_overrides=threshold_overrides or {},
        detector_types=[detector_type] if detector_type else [],
    )

    return AlertEvent(
        id=alert_id,
        student_id=student_id,
        kind=kind,
        severity=level,
        confidence=result.confidence,
        created_at=now,
        sources=list(result.sources),
        actions=default_actions(alert_id),
        metadata=metadata,
    )
