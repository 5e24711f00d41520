import math

import pytest
from models.time_entry import ParsedCandidate
from validation import (
    DATE_FORMAT_ERROR,
    HOURS_RANGE_ERROR,
    NOTES_LENGTH_ERROR,
    TASK_LENGTH_ERROR,
    TASK_REQUIRED_ERROR,
    check_date_text,
    validate_candidate,
    validate_entry,
)


def _candidate(**overrides) -> ParsedCandidate:
    values = {"date": "2025-10-06", "hours": 2.0, "task": "Bug fix", "notes": ""}
    values.update(overrides)
    return ParsedCandidate(**values)


def test_valid_candidate_has_no_errors():
    outcome = validate_candidate(_candidate())

    assert outcome.valid is True
    assert outcome.errors == []


@pytest.mark.parametrize("hours", [24, 0.25, 8.5])
def test_hours_within_bounds_are_accepted(hours):
    assert validate_candidate(_candidate(hours=hours)).valid


@pytest.mark.parametrize("hours", [0, 24.01, -1, math.inf, math.nan])
def test_hours_outside_bounds_are_rejected(hours):
    outcome = validate_candidate(_candidate(hours=hours))

    assert not outcome.valid
    assert outcome.errors == [HOURS_RANGE_ERROR]


def test_missing_hours_are_rejected_for_direct_entries():
    outcome = validate_entry(hours=None, task="Bug fix")

    assert outcome.errors == [HOURS_RANGE_ERROR]


def test_blank_task_is_required():
    outcome = validate_candidate(_candidate(task="   "))

    assert outcome.errors == [TASK_REQUIRED_ERROR]


def test_task_length_limit():
    assert validate_candidate(_candidate(task="x" * 200)).valid
    assert validate_candidate(_candidate(task="x" * 201)).errors == [TASK_LENGTH_ERROR]


def test_notes_length_limit():
    assert validate_candidate(_candidate(notes="n" * 500)).valid
    assert validate_candidate(_candidate(notes="n" * 501)).errors == [NOTES_LENGTH_ERROR]


def test_every_violation_is_reported_in_rule_order():
    outcome = validate_candidate(_candidate(hours=30, task="", notes="n" * 501, date="10/06/2025"))

    assert outcome.valid is False
    assert outcome.errors == [
        HOURS_RANGE_ERROR,
        TASK_REQUIRED_ERROR,
        NOTES_LENGTH_ERROR,
        DATE_FORMAT_ERROR,
    ]


def test_calendar_invalid_date_is_named_in_error():
    outcome = validate_candidate(_candidate(date="2025-02-30"))

    assert outcome.errors == ["Invalid calendar date: 2025-02-30"]


def test_leap_day_is_a_valid_date():
    assert check_date_text("2024-02-29") is None
    assert check_date_text("2025-02-29") == "Invalid calendar date: 2025-02-29"
