"""Configuration management for timebox_sync.

Settings are resolved in three layers, later layers winning:

1. ``.env`` file defaults (only for keys not already present in the environment)
2. an optional YAML settings file
3. ``TIMEBOX_*`` environment variables

Range validation of user-facing numeric settings happens here, on load, so the
schedule codec never has to clamp anything.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "TIMEBOX_"


class ConfigError(Exception):
    """Raised when a settings file cannot be read or validated."""


class ClickAction(str, Enum):
    """What a click on a calendar event does."""

    NONE = "none"
    EDIT = "edit"
    GOTO = "goto"


def _clamp_int(raw: Any, default: int, low: int, high: int) -> int:
    """Coerce to int within [low, high]; non-numeric input yields the default."""
    try:
        value = int(float(raw))
    except (TypeError, ValueError):
        return default
    return min(high, max(low, value))


class TimeboxSettings(BaseModel):
    """Validated engine settings."""

    start_of_day_hour: int = Field(default=8, description="Earliest hour shown in time-grid views")
    first_day_of_week: int = Field(default=1, description="0 = Sunday ... 6 = Saturday")
    multi_day_view_span: int = Field(default=3, description="Days in the multi-day view")
    click_action: ClickAction = Field(default=ClickAction.NONE, description="Single click action")
    double_click_action: ClickAction = Field(
        default=ClickAction.GOTO, description="Double click action"
    )

    external_ics_urls: str = Field(
        default="", description="Newline-separated external iCalendar feed URLs"
    )
    show_external_calendars: bool = Field(
        default=True, description="Merge external feed occurrences into the event list"
    )

    journal_date_format: str = Field(
        default="MMM do, yyyy", description="Journal page title format for new tasks"
    )
    display_timezone: str = Field(default="UTC", description="IANA zone for wall-clock times")

    optimistic_timeout_seconds: float = Field(
        default=15.0, description="How long a pending drag/resize overrides the store"
    )
    refresh_debounce_ms: int = Field(default=100, description="Quiet period before a refresh")

    feed_past_days: int = Field(default=30, description="Feed window days before now")
    feed_future_days: int = Field(default=120, description="Feed window days after now")
    max_occurrences_per_rule: int = Field(default=500, description="RRULE expansion safety cap")

    request_timeout: int = Field(default=30, description="HTTP read timeout in seconds")
    max_retries: int = Field(default=2, description="Retries for transient feed fetch errors")
    retry_backoff_factor: float = Field(default=1.5, description="Exponential backoff base")

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("start_of_day_hour", mode="before")
    @classmethod
    def _normalize_start_hour(cls, v: Any) -> int:
        return _clamp_int(v, 8, 0, 23)

    @field_validator("first_day_of_week", mode="before")
    @classmethod
    def _normalize_first_day(cls, v: Any) -> int:
        return _clamp_int(v, 1, 0, 6)

    @field_validator("multi_day_view_span", mode="before")
    @classmethod
    def _normalize_span(cls, v: Any) -> int:
        return _clamp_int(v, 3, 2, 14)

    @field_validator("click_action", "double_click_action", mode="before")
    @classmethod
    def _lowercase_action(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("external_ics_urls", mode="before")
    @classmethod
    def _join_url_list(cls, v: Any) -> Any:
        # YAML files may give a list of URLs instead of newline-separated text
        if isinstance(v, (list, tuple)):
            return "\n".join(str(item) for item in v)
        return "" if v is None else v

    @property
    def feed_urls(self) -> list[str]:
        """Configured feed URLs, one per non-blank line."""
        return [u.strip() for u in self.external_ics_urls.splitlines() if u.strip()]


class ConfigManager:
    """Loads TimeboxSettings from .env defaults, an optional YAML file and the environment."""

    def __init__(
        self, env_file_path: Path | None = None, settings_file_path: Path | None = None
    ) -> None:
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
            settings_file_path: Optional YAML settings file
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"
        self.settings_file_path = settings_file_path

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file %s (continuing)", self.env_file_path, exc_info=True
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def load_settings_file(self) -> dict[str, Any]:
        """Read the YAML settings file, if configured.

        Raises:
            ConfigError: If the file exists but is not a YAML mapping
        """
        path = self.settings_file_path
        if path is None or not path.exists():
            return {}
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read settings file {path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")
        return data

    def build_config_from_env(self) -> dict[str, Any]:
        """Collect TIMEBOX_<FIELD> environment variables for every known setting.

        Newlines in TIMEBOX_EXTERNAL_ICS_URLS may also be written as commas.
        """
        cfg: dict[str, Any] = {}
        for name in TimeboxSettings.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "external_ics_urls":
                raw = raw.replace(",", "\n")
            cfg[name] = raw
        return cfg

    def load_settings(self, overrides: Optional[dict[str, Any]] = None) -> TimeboxSettings:
        """Main entry point: resolve all layers into validated settings.

        Raises:
            ConfigError: If the merged values fail validation
        """
        self.load_env_file()
        merged: dict[str, Any] = {}
        merged.update(self.load_settings_file())
        merged.update(self.build_config_from_env())
        if overrides:
            merged.update(overrides)
        try:
            settings = TimeboxSettings(**merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e
        logger.debug(
            "Settings loaded: feeds=%d, show_external=%s, timezone=%s",
            len(settings.feed_urls),
            settings.show_external_calendars,
            settings.display_timezone,
        )
        return settings


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute-style objects."""
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
