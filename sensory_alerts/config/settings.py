"""
Alert settings defaults, presets, merging and validation.

Settings usually arrive as partial mappings (a school-level preset, then a
teacher's overrides for one student). This module merges those layers over
the defaults and normalizes the result into a valid AlertSettings, never
raising on bad input: invalid fields are reported and replaced.

Key Features:
    - Named presets per school level, with per-kind severity ceilings
    - Non-destructive deep merge (unspecified fields keep their defaults)
    - Validation that reports problems and returns normalized settings
    - Migration of legacy camelCase settings records
    - Plain-language explanation of a settings object

Example:
    >>> settings = merge_settings(get_preset("middle"), {"daily_caps": {"low": 3}})
    >>> settings.daily_caps.low, settings.daily_caps.moderate
    (3, 4)
"""

import math
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

import structlog
from pydantic import ValidationError

from sensory_alerts.config.models import (
    GLOBAL_STUDENT_ID,
    AlertSettings,
    DailyCaps,
    QuietHours,
    Sensitivity,
    SnoozePreferences,
    ThrottleSettings,
    is_valid_time_string,
)
from sensory_alerts.models.alerts import AlertKind, AlertSeverity

logger = structlog.get_logger(__name__)

SettingsInput = Union[AlertSettings, Mapping[str, Any], None]

LEGACY_UNLIMITED_LOW_CAP = 999


class PolicyPreset(str, Enum):
    """Named settings bundles by school level."""

    ELEMENTARY = "elementary"
    MIDDLE = "middle"
    HIGHSCHOOL = "highschool"
    SPECIAL_NEEDS = "special_needs"


class SettingsValidation(NamedTuple):
    """Outcome of ``validate_alert_settings``."""

    is_valid: bool
    errors: List[str]
    normalized: AlertSettings


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def deep_merge(
    base: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Recursively merge ``overrides`` over ``base``.

    Nested mappings merge key by key; lists and scalars replace. Neither
    input is modified. Enum keys are stored under their values so
    ``AlertSeverity.LOW`` and ``"low"`` address the same entry.

    Args:
        base: Base mapping.
        overrides: Mapping whose values win.

    Returns:
        Dict[str, Any]: A new merged mapping.

    Example:
        >>> deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}})
        {'a': {'x': 1, 'y': 3}}
    """
    result: Dict[str, Any] = {}
    for key, value in base.items():
        result[_plain(key)] = (
            deep_merge(value) if isinstance(value, Mapping) else value
        )
    if not overrides:
        return result

    for key, value in overrides.items():
        key = _plain(key)
        if isinstance(value, Mapping):
            existing = result.get(key)
            result[key] = deep_merge(
                existing if isinstance(existing, Mapping) else {},
                value,
            )
        else:
            result[key] = list(value) if isinstance(value, list) else value
    return result


# =============================================================================
# DEFAULTS AND PRESETS
# =============================================================================


DEFAULT_ALERT_SETTINGS = AlertSettings(
    student_id=GLOBAL_STUDENT_ID,
    quiet_hours=QuietHours(start="22:00", end="07:00"),
)

_PRESET_OVERRIDES: Dict[PolicyPreset, Dict[str, Any]] = {
    PolicyPreset.ELEMENTARY: {
        "daily_caps": {"critical": 1, "important": 2, "moderate": 3, "low": 6},
        "quiet_hours": {"start": "19:00", "end": "07:00"},
        "max_severity_by_kind": {
            "data_quality": "low",
            "improvement_noted": "low",
            "pattern_detected": "moderate",
        },
    },
    PolicyPreset.MIDDLE: {
        "daily_caps": {"critical": 1, "important": 2, "moderate": 4, "low": 8},
        "quiet_hours": {"start": "21:00", "end": "07:00"},
        "max_severity_by_kind": {
            "data_quality": "low",
            "improvement_noted": "low",
        },
    },
    PolicyPreset.HIGHSCHOOL: {
        "daily_caps": {"critical": 1, "important": 2, "moderate": 5, "low": 10},
        "quiet_hours": {"start": "22:00", "end": "07:00"},
        "max_severity_by_kind": {
            "data_quality": "moderate",
            "improvement_noted": "low",
        },
    },
    PolicyPreset.SPECIAL_NEEDS: {
        "daily_caps": {"critical": 1, "important": 2, "moderate": 3, "low": 4},
        "quiet_hours": {"start": "18:00", "end": "08:00"},
        "snooze": {"default_hours": 36, "dont_show_again_days": 10},
        "max_severity_by_kind": {
            "data_quality": "low",
            "improvement_noted": "moderate",
        },
    },
}


def _dump(settings: AlertSettings) -> Dict[str, Any]:
    return settings.model_dump(mode="json", exclude_none=False)


PRESETS: Dict[PolicyPreset, AlertSettings] = {
    preset: AlertSettings.model_validate(
        deep_merge(_dump(DEFAULT_ALERT_SETTINGS), overrides)
    )
    for preset, overrides in _PRESET_OVERRIDES.items()
}


def get_preset(name: Union[PolicyPreset, str]) -> AlertSettings:
    """
    Get a named preset.

    Args:
        name: Preset name (elementary, middle, highschool, special_needs).

    Returns:
        AlertSettings: The preset settings.

    Raises:
        ValueError: If the preset is unknown.
    """
    try:
        preset = PolicyPreset(name)
    except ValueError:
        known = ", ".join(p.value for p in PolicyPreset)
        raise ValueError(f"Unknown preset '{name}'. Known presets: {known}") from None
    return PRESETS[preset]


# =============================================================================
# VALIDATION
# =============================================================================


def _is_non_negative_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def _normalize_quiet_hours(raw: Any, errors: List[str]) -> Optional[QuietHours]:
    if raw is None:
        return None
    if isinstance(raw, QuietHours):
        return raw
    if not isinstance(raw, Mapping) or not (
        is_valid_time_string(raw.get("start")) and is_valid_time_string(raw.get("end"))
    ):
        errors.append("quiet_hours must have valid start/end times in HH:MM format")
        return None

    data = dict(raw)
    days = data.get("days_of_week")
    if isinstance(days, list):
        data["days_of_week"] = [
            d for d in days if isinstance(d, int) and not isinstance(d, bool) and 0 <= d <= 6
        ] or None
    try:
        return QuietHours.model_validate(data)
    except ValidationError as e:
        errors.append(f"quiet_hours is invalid: {_first_error(e)}")
        return None


def _normalize_caps(raw: Any, errors: List[str]) -> DailyCaps:
    defaults = DailyCaps()
    if raw is None:
        return defaults
    if isinstance(raw, DailyCaps):
        return raw
    if not isinstance(raw, Mapping):
        errors.append("daily_caps must be a mapping of severity to count")
        return defaults

    caps: Dict[str, Optional[int]] = {}
    for severity in AlertSeverity:
        key = severity.value
        if key not in raw:
            caps[key] = defaults.limit_for(severity)
            continue
        value = raw[key]
        if value is None and severity == AlertSeverity.LOW:
            caps[key] = None
        elif _is_non_negative_number(value):
            caps[key] = int(value)
        else:
            errors.append(f"daily_caps.{key} must be a non-negative number")
            caps[key] = defaults.limit_for(severity)
    for key in raw:
        if key not in caps:
            errors.append(f"daily_caps.{key} is not a severity")
    return DailyCaps(**caps)


def _normalize_kind_map(
    raw: Any,
    field: str,
    value_type: type,
    errors: List[str],
) -> Dict[AlertKind, Any]:
    out: Dict[AlertKind, Any] = {}
    if raw is None:
        return out
    if not isinstance(raw, Mapping):
        errors.append(f"{field} must be a mapping of alert kind to value")
        return out
    for key, value in raw.items():
        try:
            out[AlertKind(key)] = value_type(value)
        except (TypeError, ValueError):
            errors.append(f"{field}.{_plain(key)} has invalid value '{_plain(value)}'")
    return out


def _normalize_snooze(raw: Any, errors: List[str]) -> SnoozePreferences:
    defaults = SnoozePreferences()
    if raw is None:
        return defaults
    if isinstance(raw, SnoozePreferences):
        return raw
    if not isinstance(raw, Mapping):
        errors.append("snooze must be a mapping")
        return defaults
    values = {}
    for key in ("default_hours", "dont_show_again_days"):
        value = raw.get(key)
        if value is None:
            values[key] = getattr(defaults, key)
        elif _is_non_negative_number(value) and value > 0:
            values[key] = value
        else:
            errors.append(f"snooze.{key} must be a positive number")
            values[key] = getattr(defaults, key)
    return SnoozePreferences(**values)


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    loc = ".".join(str(p) for p in first["loc"])
    return f"{loc}: {first['msg']}" if loc else first["msg"]


def validate_alert_settings(raw: SettingsInput) -> SettingsValidation:
    """
    Validate and normalize alert settings.

    Never raises. Missing sections take defaults; invalid quiet hours are
    dropped; invalid caps, snooze values and kind entries fall back to
    defaults. Every problem is reported in ``errors``.

    Args:
        raw: An AlertSettings, a (possibly partial) mapping, or None.

    Returns:
        SettingsValidation: ``(is_valid, errors, normalized)``.

    Example:
        >>> result = validate_alert_settings({"quiet_hours": {"start": "25:00", "end": "07:00"}})
        >>> result.is_valid, result.normalized.quiet_hours
        (False, None)
    """
    if raw is None:
        return SettingsValidation(True, [], AlertSettings())
    if isinstance(raw, AlertSettings):
        return SettingsValidation(True, [], raw)
    if not isinstance(raw, Mapping):
        return SettingsValidation(
            False,
            ["settings must be a mapping"],
            AlertSettings(),
        )

    errors: List[str] = []
    known = set(AlertSettings.model_fields)
    for key in raw:
        if key not in known:
            errors.append(f"unknown setting '{key}'")

    student_id = raw.get("student_id", GLOBAL_STUDENT_ID)
    if not isinstance(student_id, str) or not student_id:
        errors.append("student_id must be a non-empty string")
        student_id = GLOBAL_STUDENT_ID

    sensitivity = dict(AlertSettings().sensitivity_by_kind)
    sensitivity.update(
        _normalize_kind_map(raw.get("sensitivity_by_kind"), "sensitivity_by_kind", Sensitivity, errors)
    )

    throttle = ThrottleSettings()
    raw_throttle = raw.get("throttle")
    if isinstance(raw_throttle, ThrottleSettings):
        throttle = raw_throttle
    elif raw_throttle is not None:
        try:
            throttle = ThrottleSettings.model_validate(raw_throttle)
        except ValidationError as e:
            errors.append(f"throttle is invalid: {_first_error(e)}")

    dedupe_window = raw.get("dedupe_window_minutes", 60)
    if not _is_non_negative_number(dedupe_window) or not 0 < dedupe_window <= 24 * 60:
        errors.append("dedupe_window_minutes must be in (0, 1440]")
        dedupe_window = 60

    normalized = AlertSettings(
        student_id=student_id,
        quiet_hours=_normalize_quiet_hours(raw.get("quiet_hours"), errors),
        daily_caps=_normalize_caps(raw.get("daily_caps"), errors),
        max_severity_by_kind=_normalize_kind_map(
            raw.get("max_severity_by_kind"), "max_severity_by_kind", AlertSeverity, errors
        ),
        sensitivity_by_kind=sensitivity,
        snooze=_normalize_snooze(raw.get("snooze"), errors),
        throttle=throttle,
        dedupe_window_minutes=dedupe_window,
    )
    return SettingsValidation(not errors, errors, normalized)


def merge_settings(
    base: SettingsInput,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AlertSettings:
    """
    Deep-merge ``overrides`` over ``base`` and normalize the result.

    Args:
        base: Base settings (model or mapping); None means the defaults.
        overrides: Partial settings to apply.

    Returns:
        AlertSettings: Normalized merged settings.
    """
    if base is None:
        base_map = _dump(DEFAULT_ALERT_SETTINGS)
    elif isinstance(base, AlertSettings):
        base_map = _dump(base)
    else:
        base_map = dict(base)

    result = validate_alert_settings(deep_merge(base_map, overrides))
    if not result.is_valid:
        logger.warning("settings_merge_normalized", errors=result.errors)
    return result.normalized


# =============================================================================
# MIGRATION AND EXPLANATION
# =============================================================================


_LEGACY_CAP_KEYS = {
    "critical": "CRIT",
    "important": "IMP",
    "moderate": "MOD",
    "low": "LOW",
}

_LEGACY_CAP_DEFAULTS = {
    "critical": 1,
    "important": 2,
    "moderate": 4,
    "low": LEGACY_UNLIMITED_LOW_CAP,
}


def _legacy_number(value: Any, fallback: Any) -> Any:
    try:
        return float(value) if value is not None else fallback
    except (TypeError, ValueError):
        return value


def migrate_settings(legacy: Mapping[str, Any]) -> AlertSettings:
    """
    Convert a legacy settings record to AlertSettings.

    Legacy records use camelCase keys (``studentId``, ``quietHours``,
    ``snoozePreferences``) and may store caps under ``caps`` with
    CRIT/IMP/MOD/LOW keys.

    Args:
        legacy: Legacy settings mapping.

    Returns:
        AlertSettings: Normalized settings over the defaults.
    """
    legacy = legacy or {}
    raw_caps = legacy.get("caps") or legacy.get("dailyCaps") or legacy.get("daily_caps")
    caps = None
    if isinstance(raw_caps, Mapping):
        caps = {
            key: _legacy_number(
                raw_caps.get(key, raw_caps.get(old)),
                _LEGACY_CAP_DEFAULTS[key],
            )
            for key, old in _LEGACY_CAP_KEYS.items()
        }

    quiet = legacy.get("quietHours", legacy.get("quiet_hours"))
    if isinstance(quiet, Mapping):
        quiet = {
            "start": quiet.get("start"),
            "end": quiet.get("end"),
            "timezone": quiet.get("timezone"),
            "days_of_week": quiet.get("daysOfWeek", quiet.get("days_of_week")),
        }

    snooze = legacy.get("snoozePreferences", legacy.get("snooze"))
    if isinstance(snooze, Mapping):
        snooze = {
            "default_hours": snooze.get("defaultHours", snooze.get("default_hours")),
            "dont_show_again_days": snooze.get(
                "dontShowAgainDays", snooze.get("dont_show_again_days")
            ),
        }

    overrides: Dict[str, Any] = {
        "student_id": legacy.get("studentId", legacy.get("student_id", GLOBAL_STUDENT_ID)),
    }
    if caps is not None:
        overrides["daily_caps"] = caps
    if quiet is not None:
        overrides["quiet_hours"] = quiet
    if snooze is not None:
        overrides["snooze"] = snooze

    base = _dump(DEFAULT_ALERT_SETTINGS)
    if "quiet_hours" in overrides:
        base["quiet_hours"] = None
    result = validate_alert_settings(deep_merge(base, overrides))
    logger.info(
        "settings_migrated",
        student_id=result.normalized.student_id,
        legacy_keys=sorted(legacy.keys()),
        errors=result.errors,
    )
    return result.normalized


def explain_settings(settings: AlertSettings) -> str:
    """
    Describe settings in plain language for a settings screen.

    Example:
        >>> explain_settings(DEFAULT_ALERT_SETTINGS).split(". ")[0]
        'Quiet hours from 22:00 to 07:00'
    """
    parts: List[str] = []
    qh = settings.quiet_hours
    if qh is not None:
        parts.append(f"Quiet hours from {qh.start} to {qh.end}.")
    caps = settings.daily_caps
    low = "unlimited" if caps.low is None else str(caps.low)
    parts.append(
        f"Daily caps: critical {caps.critical}, important {caps.important}, "
        f"moderate {caps.moderate}, low {low}."
    )
    if settings.max_severity_by_kind:
        ceilings = ", ".join(
            f"{kind.value} at most {severity.value}"
            for kind, severity in settings.max_severity_by_kind.items()
        )
        parts.append(f"Severity ceilings: {ceilings}.")
    parts.append(
        f"Default snooze: {settings.snooze.default_hours:g}h; "
        f"don't show again: {settings.snooze.dont_show_again_days:g} days."
    )
    return " ".join(parts)
