"""
Burst detector.

Finds the densest cluster of events inside a sliding time window, e.g. a run
of high-intensity emotion entries within fifteen minutes.
"""

import math
from typing import Mapping, Optional, Sequence, Union

import structlog

from sensory_alerts.detectors.tuning import clamp
from sensory_alerts.models.alerts import SourceRef, SourceType
from sensory_alerts.models.detector import BurstEvent, DetectorResult
from sensory_alerts.stats import pearson_correlation

logger = structlog.get_logger(__name__)

MS_PER_MINUTE = 60_000
MIN_PAIRED_POINTS = 3


def detect_burst(
    events: Sequence[Union[BurstEvent, Mapping]],
    window_minutes: float = 15,
    min_events: int = 3,
    label: Optional[str] = None,
) -> Optional[DetectorResult]:
    """
    Detect a burst of events.

    Args:
        events: Events in any order.
        window_minutes: Sliding window length.
        min_events: Minimum events inside the window.
        label: Evidence label.

    Returns:
        Optional[DetectorResult]: The densest window as a result, or None if
        no window holds ``min_events`` events or the window is not a positive
        length.
    """
    if not math.isfinite(window_minutes) or window_minutes <= 0:
        return None
    min_events = max(1, int(min_events))
    if events is None or len(events) < min_events:
        return None

    parsed = [e if isinstance(e, BurstEvent) else BurstEvent.model_validate(e) for e in events]
    ordered = sorted(parsed, key=lambda e: e.timestamp)
    window_ms = window_minutes * MS_PER_MINUTE

    best_start = best_end = best_count = 0
    best_sum = 0.0
    start = 0
    running = 0.0
    for end, event in enumerate(ordered):
        running += event.value
        while event.timestamp - ordered[start].timestamp > window_ms:
            running -= ordered[start].value
            start += 1
        count = end - start + 1
        if count > best_count and count >= min_events:
            best_start, best_end, best_count, best_sum = start, end, count, running

    if best_count < min_events:
        logger.debug("burst_not_found", label=label or "Burst", events=len(ordered))
        return None

    cluster = ordered[best_start:best_end + 1]
    start_ts = cluster[0].timestamp
    end_ts = cluster[-1].timestamp
    duration_minutes = (end_ts - start_ts) / MS_PER_MINUTE
    intensity = best_sum / best_count
    peak = max(e.value for e in cluster)
    duration_ratio = clamp(
        min(window_minutes, max(duration_minutes, 0.0)) / window_minutes, 0.0, 1.0
    )
    frequency_ratio = clamp(best_count / (min_events * 2), 0.0, 1.0)

    paired = [
        (e.value, e.paired_value)
        for e in cluster
        if e.paired_value is not None and math.isfinite(e.paired_value)
    ]
    cross_correlation = 0.0
    if len(paired) >= MIN_PAIRED_POINTS:
        cross_correlation = pearson_correlation(
            [p[0] for p in paired], [p[1] for p in paired]
        )

    score = clamp(0.5 * frequency_ratio + 0.5 * duration_ratio, 0.0, 1.0)
    expected_density = min_events / max(window_minutes, 1.0)
    observed_density = best_count / max(duration_minutes, 1e-3)
    density_ratio = clamp(observed_density / max(expected_density, 1e-3), 0.0, 1.0)
    confidence = clamp(
        0.6
        + (best_count - min_events) * 0.08
        + abs(cross_correlation) * 0.2
        + density_ratio * 0.12,
        0.6,
        0.95,
    )

    logger.debug(
        "burst_detected",
        label=label or "Burst",
        event_count=best_count,
        duration_minutes=duration_minutes,
    )

    return DetectorResult(
        score=score,
        confidence=confidence,
        impact_hint="Clustered high-intensity episode detected",
        sources=[
            SourceRef(
                type=SourceType.PATTERN_ENGINE,
                label=label or "Burst episode",
                details={
                    "window_minutes": window_minutes,
                    "event_count": best_count,
                    "duration_minutes": duration_minutes,
                    "mean_intensity": intensity,
                    "peak_intensity": peak,
                    "start_timestamp": start_ts,
                    "end_timestamp": end_ts,
                    "cross_correlation": cross_correlation,
                },
            )
        ],
    )
