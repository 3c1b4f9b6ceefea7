"""
Validation predicates for records crossing the storage boundary.

Records loaded from storage or received from other layers are plain
mappings. These helpers answer "is this a well-formed X?" without raising,
so callers can filter bad records instead of aborting a whole batch.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError

from sensory_alerts.models.alerts import AlertEvent, SourceRef
from sensory_alerts.models.detector import DetectorResult


def _plain(value: Any) -> Any:
    # Instances can be mutated after construction, so check their current fields.
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _validates(model: type, value: Any) -> bool:
    try:
        model.model_validate(_plain(value))
    except (ValidationError, TypeError, ValueError):
        return False
    return True


def is_valid_source_ref(value: Any) -> bool:
    """Check if ``value`` is a well-formed SourceRef."""
    return _validates(SourceRef, value)


def is_valid_detector_result(value: Any) -> bool:
    """Check if ``value`` is a well-formed DetectorResult."""
    return _validates(DetectorResult, value)


def is_valid_alert_event(value: Any) -> bool:
    """
    Check if ``value`` is a well-formed AlertEvent.

    The creation timestamp must parse, confidence must lie in [0, 1] and
    kind, severity and status must be members of their enumerations.

    Example:
        >>> is_valid_alert_event({"id": "a1", "studentId": "s1"})
        False
    """
    return _validates(AlertEvent, value)


def parse_alert_event(value: Any) -> Optional[AlertEvent]:
    """
    Parse ``value`` into an AlertEvent.

    Args:
        value: Mapping (snake_case or camelCase keys) or AlertEvent.

    Returns:
        Optional[AlertEvent]: The parsed alert, or None if malformed.
    """
    try:
        parsed = AlertEvent.model_validate(_plain(value))
    except (ValidationError, TypeError, ValueError):
        return None
    return value if isinstance(value, AlertEvent) else parsed


def alert_event_errors(value: Any) -> List[str]:
    """
    List the problems that make ``value`` an invalid AlertEvent.

    Returns:
        List[str]: ``"<field>: <message>"`` entries; empty when valid.
    """
    return _errors(AlertEvent, value)


def _errors(model: type, value: Any) -> List[str]:
    try:
        model.model_validate(_plain(value))
    except ValidationError as e:
        return [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
    except (TypeError, ValueError) as e:
        return [str(e)]
    return []
