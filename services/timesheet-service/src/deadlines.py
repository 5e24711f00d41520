"""
Work-week and invoice deadline arithmetic.

A work week runs Monday 00:01 through Sunday 23:59:59 in the configured zone.
The invoice for a week is due the Tuesday after it ends, at 23:59:59.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Literal

DeadlineStatus = Literal["ok", "approaching", "late"]

PERIOD_START_OFFSET = timedelta(minutes=1)
PERIOD_LENGTH = timedelta(days=6, hours=23, minutes=58, seconds=59)
DUE_WEEKDAY = 1  # Tuesday
DUE_TIME = time(23, 59, 59)


@dataclass(frozen=True, slots=True)
class WorkPeriod:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def current_period(now: datetime) -> WorkPeriod:
    """Return the work week containing `now` (which must be timezone-aware)."""
    monday = (now - timedelta(days=now.weekday())).date()
    start = datetime.combine(monday, time.min, tzinfo=now.tzinfo) + PERIOD_START_OFFSET
    return WorkPeriod(start=start, end=start + PERIOD_LENGTH)


def due_for_period(period_end: datetime) -> datetime:
    """Return the first Tuesday 23:59:59 strictly after `period_end`."""
    days_ahead = (DUE_WEEKDAY - period_end.weekday()) % 7
    due = datetime.combine(period_end.date() + timedelta(days=days_ahead), DUE_TIME, tzinfo=period_end.tzinfo)
    if due <= period_end:
        due += timedelta(weeks=1)
    return due


def status_for(now: datetime, due: datetime, warn_hours: int = 24) -> DeadlineStatus:
    if now >= due:
        return "late"
    if now >= due - timedelta(hours=warn_hours):
        return "approaching"
    return "ok"


def deadline_snapshot(now: datetime, warn_hours: int = 24) -> dict[str, str]:
    period = current_period(now)
    due = due_for_period(period.end)
    return {
        "period_start": period.start.isoformat(),
        "period_end": period.end.isoformat(),
        "due": due.isoformat(),
        "status": status_for(now, due, warn_hours),
        "zone": str(now.tzinfo),
    }
