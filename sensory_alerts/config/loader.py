"""
Configuration loader for YAML-based engine configuration.

This module provides utilities to load and validate configuration from YAML
files. All configuration is validated using Pydantic models so that
configuration errors surface at startup instead of at the first alert.

Configuration files expected:
    - config/alerts.yaml: Settings preset and policy overrides (required)
    - config/features.yaml: Detector tuning and logging (optional)

Environment variables override:
    - LOG_LEVEL: Application log level

Example:
    >>> from sensory_alerts.config.loader import load_config
    >>> config = load_config("config")
    >>> config.alerts.daily_caps.critical
    1
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from sensory_alerts.config.models import (
    AlertSettings,
    DetectorConfig,
    EngineConfig,
    LoggingConfig,
    LogLevel,
)
from sensory_alerts.config.settings import (
    DEFAULT_ALERT_SETTINGS,
    deep_merge,
    get_preset,
)

ALERTS_FILE = "alerts.yaml"
FEATURES_FILE = "features.yaml"


class ConfigLoadError(Exception):
    """
    Raised when configuration loading fails.

    Attributes:
        message: Error message describing what went wrong.
        file_path: Path to the file that caused the error, if applicable.
        cause: Original exception that caused the error, if any.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)


class ConfigLoader:
    """
    Loads and validates engine configuration from YAML files.

    Expects the following directory structure:
        config/
        ├── alerts.yaml    - Preset name and alert settings overrides
        └── features.yaml  - Detector tuning and logging (optional)

    Example:
        >>> loader = ConfigLoader("config")
        >>> config = loader.load()
        >>> config.preset
        'middle'
    """

    def __init__(self, config_dir: Path | str = "config"):
        """
        Initialize config loader.

        Args:
            config_dir: Path to configuration directory (default: 'config').

        Raises:
            ConfigLoadError: If config directory does not exist.
        """
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigLoadError(
                f"Configuration directory not found: {self.config_dir}",
                file_path=self.config_dir,
            )
        if not self.config_dir.is_dir():
            raise ConfigLoadError(
                f"Configuration path is not a directory: {self.config_dir}",
                file_path=self.config_dir,
            )

    def _load_yaml(self, filename: str, required: bool = True) -> Dict[str, Any]:
        """
        Load a YAML file from the config directory.

        Args:
            filename: Name of YAML file (e.g., 'alerts.yaml').
            required: Raise if the file is missing; otherwise return {}.

        Returns:
            Dict containing parsed YAML content.

        Raises:
            ConfigLoadError: If file not found, empty, or invalid YAML.
        """
        file_path = self.config_dir / filename
        if not file_path.exists():
            if not required:
                return {}
            raise ConfigLoadError(
                f"Configuration file not found: {file_path}",
                file_path=file_path,
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(
                f"Invalid YAML syntax in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigLoadError(
                f"Error reading {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        if data is None:
            raise ConfigLoadError(
                f"Configuration file is empty: {file_path}",
                file_path=file_path,
            )
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Configuration file must contain a mapping: {file_path}",
                file_path=file_path,
            )
        return data

    def _load_alerts(self) -> Tuple[Optional[str], AlertSettings]:
        """
        Load the preset name and alert settings from alerts.yaml.

        The file may name a ``preset``; ``settings`` are deep-merged over it
        (or over the defaults when no preset is named).

        Returns:
            Tuple of (preset name or None, AlertSettings).

        Raises:
            ConfigLoadError: If the preset is unknown or settings are invalid.
        """
        file_path = self.config_dir / ALERTS_FILE
        data = self._load_yaml(ALERTS_FILE)

        preset = data.get("preset")
        try:
            base = get_preset(preset) if preset else DEFAULT_ALERT_SETTINGS
        except ValueError as e:
            raise ConfigLoadError(str(e), file_path=file_path, cause=e) from e

        overrides = data.get("settings") or {}
        if not isinstance(overrides, dict):
            raise ConfigLoadError(
                f"'settings' must be a mapping in {file_path}",
                file_path=file_path,
            )

        try:
            merged = deep_merge(base.model_dump(mode="json"), overrides)
            settings = AlertSettings.model_validate(merged)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid alert settings in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        return preset, settings

    def _load_features(self) -> Tuple[DetectorConfig, LoggingConfig]:
        """
        Load detector and logging configuration from features.yaml.

        Returns:
            Tuple of (DetectorConfig, LoggingConfig).

        Raises:
            ConfigLoadError: If validation fails.
        """
        file_path = self.config_dir / FEATURES_FILE
        data = self._load_yaml(FEATURES_FILE, required=False)

        try:
            detectors = DetectorConfig(**(data.get("detectors") or {}))
            logging_config = LoggingConfig(**(data.get("logging") or {}))
        except (ValidationError, TypeError) as e:
            raise ConfigLoadError(
                f"Invalid feature configuration in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        return detectors, logging_config

    def _get_log_level(self, default: LogLevel = LogLevel.INFO) -> LogLevel:
        """
        Get log level from environment.

        Environment variables:
            - LOG_LEVEL: Log level (default: the configured level)

        Returns:
            LogLevel enum value.
        """
        level_str = os.getenv("LOG_LEVEL", default.value).upper()
        try:
            return LogLevel(level_str)
        except ValueError:
            return default

    def load(self) -> EngineConfig:
        """
        Load and validate all configuration files.

        Returns:
            EngineConfig: Validated engine configuration.

        Raises:
            ConfigLoadError: If any configuration is invalid or missing.
        """
        try:
            preset, alerts = self._load_alerts()
            detectors, logging_config = self._load_features()
            logging_config = logging_config.model_copy(
                update={"level": self._get_log_level(logging_config.level)}
            )

            return EngineConfig(
                preset=preset,
                alerts=alerts,
                detectors=detectors,
                logging=logging_config,
            )

        except ConfigLoadError:
            raise
        except ValidationError as e:
            raise ConfigLoadError(
                f"Configuration validation failed: {e}",
                cause=e,
            ) from e


def load_config(config_dir: Path | str = "config") -> EngineConfig:
    """
    Convenience function to load engine configuration.

    Args:
        config_dir: Path to configuration directory (default: 'config').

    Returns:
        EngineConfig: Validated engine configuration.

    Raises:
        ConfigLoadError: If configuration loading fails.

    Example:
        >>> from sensory_alerts.config import load_config
        >>> config = load_config()
        >>> config.alerts.quiet_hours.start
        '21:00'
    """
    loader = ConfigLoader(config_dir)
    return loader.load()
