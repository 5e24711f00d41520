"""
Environment-driven configuration for the timesheet service.

Everything the service tunes at deploy time (database location, the zone used
to compute "today" and work-week deadlines, rate limits) is read here once so
handlers and the importer receive already-validated values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DB_URL_ENV_VAR = "TIMESHEET_DB_URL"
TIMEZONE_ENV_VAR = "TIMESHEET_TIMEZONE"
WARN_HOURS_ENV_VAR = "TIMESHEET_DEADLINE_WARN_HOURS"
RATE_LIMIT_ENV_VAR = "TIMESHEET_RATE_LIMIT_PER_MIN"
RATE_LIMIT_BURST_ENV_VAR = "TIMESHEET_RATE_LIMIT_BURST"

DEFAULT_TIMEZONE = "America/Denver"
DEFAULT_WARN_HOURS = 24
DEFAULT_RATE_LIMIT_PER_MIN = 60
DEFAULT_RATE_LIMIT_BURST = 20
DEFAULT_DB_FILENAME = "timesheet.db"
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / DEFAULT_DB_FILENAME


class SettingsError(RuntimeError):
    """Raised when service configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class TimesheetSettings:
    database_url: str
    timezone: str
    deadline_warn_hours: int
    rate_limit_per_min: int
    rate_limit_burst: int

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_settings() -> TimesheetSettings:
    """Construct TimesheetSettings from the process environment."""

    return TimesheetSettings(
        database_url=get_database_url(),
        timezone=_parse_zone(os.getenv(TIMEZONE_ENV_VAR)),
        deadline_warn_hours=_parse_int(os.getenv(WARN_HOURS_ENV_VAR), DEFAULT_WARN_HOURS, WARN_HOURS_ENV_VAR),
        rate_limit_per_min=_parse_int(
            os.getenv(RATE_LIMIT_ENV_VAR), DEFAULT_RATE_LIMIT_PER_MIN, RATE_LIMIT_ENV_VAR
        ),
        rate_limit_burst=_parse_int(
            os.getenv(RATE_LIMIT_BURST_ENV_VAR), DEFAULT_RATE_LIMIT_BURST, RATE_LIMIT_BURST_ENV_VAR
        ),
    )


def get_database_url() -> str:
    """Return the configured database URL (defaults to a SQLite file)."""
    env_url = os.getenv(DB_URL_ENV_VAR)
    if env_url:
        return env_url
    return f"sqlite:///{DEFAULT_DB_PATH}"


def _parse_zone(raw_value: Optional[str]) -> str:
    candidate = (raw_value or "").strip() or DEFAULT_TIMEZONE
    try:
        ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise SettingsError(f"{TIMEZONE_ENV_VAR} is not a known time zone (received '{candidate}')") from exc
    return candidate


def _parse_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        value = int(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc
    if value < 0:
        raise SettingsError(f"{env_key} must not be negative (received '{raw_value}')")
    return value
