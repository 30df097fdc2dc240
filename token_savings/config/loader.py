"""
Configuration management and loading.

Handles report settings and environment variables.
"""

import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from enum import Enum
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

DB_PATH_ENV_VAR = "TOKEN_SAVINGS_DB"


class WeekAnchor(Enum):
    """Weekday on which every weekly bucket starts."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def from_name(cls, name: str) -> "WeekAnchor":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            valid = [anchor.name.lower() for anchor in cls]
            raise ValueError(f"'week_start' must be one of: {valid}")


def default_db_path() -> str:
    """History database location, overridable through TOKEN_SAVINGS_DB."""
    env_path = os.environ.get(DB_PATH_ENV_VAR)
    if env_path:
        return env_path
    return str(Path.home() / ".local" / "share" / "token-savings" / "history.db")


def resolve_timezone(name: str) -> tzinfo:
    """Return the tzinfo for an IANA zone name.

    Raises:
        ValueError: If the zone is unknown
    """
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {name}")


@dataclass(frozen=True)
class Settings:
    """Process-wide report settings.

    The reference time zone and week anchor are fixed for a whole run so
    every record is bucketed the same way.
    """
    db_path: str
    timezone: str = "UTC"
    week_start: WeekAnchor = WeekAnchor.MONDAY
    history_days: Optional[int] = None

    def __post_init__(self):
        """Validate settings values."""
        if not self.db_path:
            raise ValueError("db_path cannot be empty")
        resolve_timezone(self.timezone)
        if self.history_days is not None and self.history_days <= 0:
            raise ValueError("history_days must be > 0")

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.timezone)


def default_settings() -> Settings:
    return Settings(db_path=default_db_path())


def load_settings(path: Optional[str] = None) -> Settings:
    """Load and validate report settings from a YAML file.

    Args:
        path: Path to YAML configuration file, or None for defaults

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return default_settings()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return default_settings()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_keys = {'db_path', 'timezone', 'week_start', 'history_days'}
    unknown_keys = set(raw_config.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    db_path = raw_config.get('db_path', default_db_path())
    if not isinstance(db_path, str):
        raise ValueError("'db_path' must be a string")
    db_path = str(Path(db_path).expanduser())

    tz_name = raw_config.get('timezone', "UTC")
    if not isinstance(tz_name, str):
        raise ValueError("'timezone' must be a string")

    week_start = raw_config.get('week_start', "monday")
    if not isinstance(week_start, str):
        raise ValueError("'week_start' must be a string")

    history_days = raw_config.get('history_days')
    if history_days is not None and (isinstance(history_days, bool) or not isinstance(history_days, int)):
        raise ValueError("'history_days' must be an integer")

    return Settings(
        db_path=db_path,
        timezone=tz_name,
        week_start=WeekAnchor.from_name(week_start),
        history_days=history_days
    )
