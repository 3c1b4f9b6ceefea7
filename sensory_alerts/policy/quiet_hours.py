"""Quiet hours window evaluation."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sensory_alerts.config.models import QuietHours, minutes_of_day


def local_time(at: datetime, quiet: QuietHours) -> datetime:
    """
    Wall-clock time used for quiet hours.

    Aware timestamps are converted to the window's timezone when one is
    set. Otherwise the timestamp's own wall clock is used.
    """
    if quiet.timezone and at.tzinfo is not None:
        return at.astimezone(ZoneInfo(quiet.timezone))
    return at


def sunday_based_weekday(at: datetime) -> int:
    """Day of week with 0 = Sunday."""
    return (at.weekday() + 1) % 7


def is_within_quiet_hours(at: datetime, quiet: QuietHours) -> bool:
    """
    Check if ``at`` falls inside the quiet hours window.

    Bounds are inclusive. For a window crossing midnight, the part after
    midnight belongs to the previous day's window when a days-of-week filter
    is set.

    Args:
        at: Instant to check.
        quiet: Quiet hours window.

    Returns:
        bool: True if inside the window.

    Example:
        >>> qh = QuietHours(start="20:00", end="07:00")
        >>> is_within_quiet_hours(datetime(2024, 3, 4, 22, 0), qh)
        True
    """
    local = local_time(at, quiet)
    minute = local.hour * 60 + local.minute
    start = minutes_of_day(quiet.start)
    end = minutes_of_day(quiet.end)

    if start <= end:
        inside = start <= minute <= end
        window_day = local
    elif minute >= start:
        inside = True
        window_day = local
    elif minute <= end:
        inside = True
        window_day = local - timedelta(days=1)
    else:
        inside = False
        window_day = local

    if not inside:
        return False
    if not quiet.days_of_week:
        return True
    return sunday_based_weekday(window_day) in quiet.days_of_week
