"""
Student alert detection and governance engine.

Turns aggregated tracking data (emotion and sensory observations rolled up
into contingency tables, time series and event lists) into confidence-scored
detector results, and decides which of the alerts built from them reach a
teacher.

This package provides:
- Statistics primitives (correlation, Fisher's exact test, normal quantiles)
- Control-chart tuning and statistical detectors
- Alert domain models and validation predicates
- Alert policy engine (quiet hours, caps, snoozing, throttling, dedup)
- Settings presets and YAML configuration loading
"""

__version__ = "0.1.0"
