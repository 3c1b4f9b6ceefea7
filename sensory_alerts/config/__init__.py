"""
Configuration module for the alerting engine.

This module provides configuration loading and validation using Pydantic
models. Settings start from a named preset or the defaults, and partial
overrides are deep-merged over them.

Example:
    >>> from sensory_alerts.config import load_config
    >>> config = load_config("config")
    >>> config.alerts.daily_caps.moderate
    4
"""

from sensory_alerts.config.loader import ConfigLoader, ConfigLoadError, load_config
from sensory_alerts.config.models import (
    GLOBAL_STUDENT_ID,
    AlertSettings,
    DailyCaps,
    DetectorConfig,
    EngineConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    QuietHours,
    Sensitivity,
    SnoozePreferences,
    ThrottleSettings,
)
from sensory_alerts.config.settings import (
    DEFAULT_ALERT_SETTINGS,
    PRESETS,
    PolicyPreset,
    SettingsValidation,
    deep_merge,
    explain_settings,
    get_preset,
    merge_settings,
    migrate_settings,
    validate_alert_settings,
)

__all__ = [
    # Loader
    "ConfigLoader",
    "ConfigLoadError",
    "load_config",
    # Models
    "GLOBAL_STUDENT_ID",
    "AlertSettings",
    "DailyCaps",
    "DetectorConfig",
    "EngineConfig",
    "LogFormat",
    "LoggingConfig",
    "LogLevel",
    "QuietHours",
    "Sensitivity",
    "SnoozePreferences",
    "ThrottleSettings",
    # Settings helpers
    "DEFAULT_ALERT_SETTINGS",
    "PRESETS",
    "PolicyPreset",
    "SettingsValidation",
    "deep_merge",
    "explain_settings",
    "get_preset",
    "merge_settings",
    "migrate_settings",
    "validate_alert_settings",
]
