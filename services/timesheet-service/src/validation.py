"""Business rules shared by batch previews and direct entry creation."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, List, Optional

from models.time_entry import ParsedCandidate, ValidationOutcome

MAX_HOURS_PER_ENTRY = 24
MAX_TASK_LENGTH = 200
MAX_NOTES_LENGTH = 500

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

HOURS_RANGE_ERROR = f"Hours must be greater than 0 and at most {MAX_HOURS_PER_ENTRY}"
TASK_REQUIRED_ERROR = "Task is required"
TASK_LENGTH_ERROR = f"Task must be {MAX_TASK_LENGTH} characters or less"
NOTES_LENGTH_ERROR = f"Notes must be {MAX_NOTES_LENGTH} characters or less"
DATE_FORMAT_ERROR = "Invalid date format (use YYYY-MM-DD)"


def validate_entry(
    *,
    hours: Any,
    task: Optional[str],
    notes: Optional[str] = None,
    date_text: Optional[str] = None,
) -> ValidationOutcome:
    """
    Check an entry against every rule and report all violations at once.

    Messages appear in rule order: hours, task, notes, date.
    """

    errors: List[str] = []

    if not hours_in_range(hours):
        errors.append(HOURS_RANGE_ERROR)

    task_text = (task or "").strip()
    if not task_text:
        errors.append(TASK_REQUIRED_ERROR)
    elif len(task_text) > MAX_TASK_LENGTH:
        errors.append(TASK_LENGTH_ERROR)

    if notes and len(notes.strip()) > MAX_NOTES_LENGTH:
        errors.append(NOTES_LENGTH_ERROR)

    if date_text is not None:
        date_error = check_date_text(date_text)
        if date_error:
            errors.append(date_error)

    return ValidationOutcome.from_errors(errors)


def validate_candidate(candidate: ParsedCandidate) -> ValidationOutcome:
    return validate_entry(
        hours=candidate.hours,
        task=candidate.task,
        notes=candidate.notes,
        date_text=candidate.date,
    )


def check_date_text(date_text: str) -> Optional[str]:
    """Return an error message when `date_text` is not a calendar-valid YYYY-MM-DD date."""
    if not ISO_DATE_RE.match(date_text):
        return DATE_FORMAT_ERROR
    try:
        date.fromisoformat(date_text)
    except ValueError:
        return f"Invalid calendar date: {date_text}"
    return None


def hours_in_range(hours: Any) -> bool:
    if isinstance(hours, bool) or not isinstance(hours, (int, float)):
        return False
    if not math.isfinite(hours):
        return False
    return 0 < hours <= MAX_HOURS_PER_ENTRY
