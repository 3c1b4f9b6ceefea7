"""
Pydantic configuration models for the alerting engine.

This module defines all configuration models used by the engine. All
models use Pydantic v2 for validation and are immutable (frozen) to
prevent accidental modification at runtime.

Models are organized by domain:
    - Alert policy settings (quiet hours, caps, snooze, throttle)
    - Detector tuning settings
    - Logging configuration
    - Root engine configuration

Example:
    >>> from sensory_alerts.config.models import AlertSettings
    >>> settings = AlertSettings(quiet_hours={"start": "20:00", "end": "07:00"})
    >>> settings.daily_caps.moderate
    4
"""

import re
from enum import Enum
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from sensory_alerts.models.alerts import AlertKind, AlertSeverity

GLOBAL_STUDENT_ID = "__global__"

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def is_valid_time_string(value: object) -> bool:
    """Check for an ``HH:MM`` 24-hour clock string."""
    return isinstance(value, str) and _TIME_RE.match(value) is not None


def minutes_of_day(value: str) -> int:
    """Convert ``HH:MM`` to minutes after midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


# =============================================================================
# ENUMS
# =============================================================================


class Sensitivity(str, Enum):
    """Detector sensitivity levels per alert kind."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LogFormat(str, Enum):
    """Logging format options."""

    JSON = "json"
    TEXT = "text"


class LogLevel(str, Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# ALERT POLICY CONFIGURATION
# =============================================================================


class QuietHours(BaseModel):
    """
    Quiet hours window.

    Bounds are inclusive and the window may cross midnight (e.g. 22:00 to
    07:00). Days of week use 0 = Sunday; for windows crossing midnight the
    early-morning part counts toward the previous day.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    start: str = Field(..., description="Window start, HH:MM")
    end: str = Field(..., description="Window end, HH:MM")
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone applied to aware timestamps",
    )
    days_of_week: Optional[List[int]] = Field(
        default=None,
        description="Days the window applies to (0 = Sunday)",
    )
    override_severity: AlertSeverity = Field(
        default=AlertSeverity.CRITICAL,
        description="Alerts at or above this severity pass during quiet hours",
    )

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Require HH:MM."""
        if not is_valid_time_string(v):
            raise ValueError(f"Invalid time '{v}', expected HH:MM")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        """Require a known IANA timezone."""
        if v is None:
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        """Require days in 0..6; an empty list means every day."""
        if v is None:
            return None
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"Invalid day of week {day}, expected 0-6")
        return v or None

    @property
    def crosses_midnight(self) -> bool:
        return minutes_of_day(self.start) > minutes_of_day(self.end)


class DailyCaps(BaseModel):
    """Maximum alerts per severity per student per calendar day."""

    model_config = {"frozen": True, "extra": "forbid"}

    critical: int = Field(default=1, ge=0)
    important: int = Field(default=2, ge=0)
    moderate: int = Field(default=4, ge=0)
    low: Optional[int] = Field(
        default=None,
        description="Unlimited when None",
        ge=0,
    )

    def limit_for(self, severity: AlertSeverity) -> Optional[int]:
        """
        Get the cap for a severity.

        Returns:
            Optional[int]: The cap, or None when unlimited.
        """
        return getattr(self, AlertSeverity(severity).value)


class SnoozePreferences(BaseModel):
    """Default snooze durations."""

    model_config = {"frozen": True, "extra": "forbid"}

    default_hours: float = Field(default=24, gt=0, description="Default snooze length")
    dont_show_again_days: float = Field(
        default=7,
        gt=0,
        description="Length of a 'don't show again' snooze",
    )


def _default_bases() -> Dict[AlertSeverity, float]:
    return {
        AlertSeverity.CRITICAL: 1.3,
        AlertSeverity.IMPORTANT: 1.6,
        AlertSeverity.MODERATE: 2.0,
        AlertSeverity.LOW: 2.5,
    }


class ThrottleSettings(BaseModel):
    """
    Exponential backoff for repeated alerts on the same dedupe key.

    delay = min(max_delay, base ** min(10, attempts)) seconds
    """

    model_config = {"frozen": True, "extra": "forbid"}

    base_by_severity: Dict[AlertSeverity, float] = Field(
        default_factory=_default_bases,
        description="Backoff base per severity",
    )
    max_delay_seconds: int = Field(
        default=6 * 60 * 60,
        description="Global cap on the throttle delay",
        ge=0,
    )
    max_delay_by_severity: Dict[AlertSeverity, int] = Field(
        default_factory=dict,
        description="Per-severity caps (bounded by max_delay_seconds)",
    )

    @field_validator("base_by_severity")
    @classmethod
    def validate_bases(cls, v: Dict[AlertSeverity, float]) -> Dict[AlertSeverity, float]:
        """Bases must exceed 1 so the delay grows."""
        for severity, base in v.items():
            if base <= 1:
                raise ValueError(f"Throttle base for {severity.value} must be > 1")
        return {**_default_bases(), **v}

    def base_for(self, severity: AlertSeverity) -> float:
        return self.base_by_severity.get(AlertSeverity(severity), 2.0)

    def max_delay_for(self, severity: AlertSeverity) -> int:
        per_severity = self.max_delay_by_severity.get(AlertSeverity(severity))
        if per_severity is None:
            return self.max_delay_seconds
        return min(per_severity, self.max_delay_seconds)


def _default_sensitivity() -> Dict[AlertKind, Sensitivity]:
    return {
        AlertKind.SAFETY: Sensitivity.HIGH,
        AlertKind.BEHAVIOR_SPIKE: Sensitivity.MEDIUM,
        AlertKind.CONTEXT_ASSOCIATION: Sensitivity.MEDIUM,
        AlertKind.INTERVENTION_DUE: Sensitivity.MEDIUM,
        AlertKind.DATA_QUALITY: Sensitivity.LOW,
        AlertKind.IMPROVEMENT_NOTED: Sensitivity.LOW,
        AlertKind.PATTERN_DETECTED: Sensitivity.MEDIUM,
    }


class AlertSettings(BaseModel):
    """
    Alert policy settings for one student (or the global default).

    Attributes:
        student_id: Student the settings apply to (``__global__`` default).
        quiet_hours: Optional quiet hours window.
        daily_caps: Per-severity daily caps.
        max_severity_by_kind: Highest severity emitted per alert kind.
        sensitivity_by_kind: Detector sensitivity per alert kind.
        snooze: Default snooze durations.
        throttle: Exponential backoff settings.
        dedupe_window_minutes: Window for collapsing near-duplicates.

    Example:
        >>> settings = AlertSettings(daily_caps={"moderate": 2})
        >>> settings.daily_caps.limit_for(AlertSeverity.MODERATE)
        2
    """

    model_config = {"frozen": True, "extra": "forbid"}

    student_id: str = Field(default=GLOBAL_STUDENT_ID, min_length=1)
    quiet_hours: Optional[QuietHours] = Field(
        default=None,
        description="Quiet hours window",
    )
    daily_caps: DailyCaps = Field(
        default_factory=DailyCaps,
        description="Per-severity daily caps",
    )
    max_severity_by_kind: Dict[AlertKind, AlertSeverity] = Field(
        default_factory=dict,
        description="Severity ceiling per alert kind",
    )
    sensitivity_by_kind: Dict[AlertKind, Sensitivity] = Field(
        default_factory=_default_sensitivity,
        description="Detector sensitivity per alert kind",
    )
    snooze: SnoozePreferences = Field(
        default_factory=SnoozePreferences,
        description="Snooze defaults",
    )
    throttle: ThrottleSettings = Field(
        default_factory=ThrottleSettings,
        description="Throttle settings",
    )
    dedupe_window_minutes: float = Field(
        default=60,
        description="Deduplication window in minutes",
        gt=0,
        le=24 * 60,
    )

    def max_severity_for(self, kind: AlertKind) -> Optional[AlertSeverity]:
        return self.max_severity_by_kind.get(AlertKind(kind))


# =============================================================================
# DETECTOR CONFIGURATION
# =============================================================================


class DetectorConfig(BaseModel):
    """Detector tuning shared across students."""

    model_config = {"frozen": True, "extra": "forbid"}

    target_false_alerts_per_n: float = Field(
        default=336,
        description="Accept about one false alert per N points",
        gt=1,
    )
    cusum_k_factor: float = Field(
        default=0.5,
        description="CUSUM reference value in sigma units",
        ge=0.1,
        le=1.0,
    )
    ewma_lambda: float = Field(default=0.2, gt=0, le=0.9)
    association_min_support: int = Field(
        default=5,
        description="Minimum contingency total for association tests",
        ge=1,
    )
    burst_window_minutes: float = Field(default=15, gt=0)
    burst_min_events: int = Field(default=3, ge=2)
    adapt_to_baseline_quality: bool = Field(
        default=True,
        description="Widen or narrow limits by baseline quality",
    )


# =============================================================================
# LOGGING / ROOT
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Default log level",
    )


class EngineConfig(BaseModel):
    """
    Root engine configuration.

    Aggregates the alert settings (after preset and overrides), detector
    tuning and logging configuration.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    preset: Optional[str] = Field(default=None, description="Preset the settings start from")
    alerts: AlertSettings = Field(
        default_factory=AlertSettings,
        description="Alert policy settings",
    )
    detectors: DetectorConfig = Field(
        default_factory=DetectorConfig,
        description="Detector tuning",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
