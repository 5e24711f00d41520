from dataclasses import dataclass
from datetime import date
from typing import Optional

import pytest
from importer import (
    INACTIVE_USER_ERROR,
    BatchImporter,
    IdempotencyKeyConflictError,
    ImportInProgressError,
    ImportRejectedError,
)
from persistence.models import AuditEvent, BatchImport, TimeEntry, User
from persistence.repository import BatchImportRepository, InvoiceRepository, InvoiceStatus, UserRepository
from sqlalchemy.exc import IntegrityError

KEY = "6f1c2a4e-8d7b-4b7e-9a51-0c2f3b1d9e77"


@dataclass
class Row:
    date: str
    hours: float
    task: str
    notes: Optional[str] = ""


ROWS = [
    Row("2025-10-06", 2, "Bug fix", "Fixed issue #123"),
    Row("2025-10-07", 1.5, "Task name", "Optional notes"),
]


def _entry_count(db) -> int:
    return db.query(TimeEntry).count()


def test_first_import_creates_every_entry(db, user):
    result = BatchImporter(db).import_entries(user, KEY, ROWS)

    assert result.replayed is False
    assert [entry["task"] for entry in result.entries] == ["Bug fix", "Task name"]
    assert all(entry["id"] for entry in result.entries)
    assert result.entries[0] == {
        "id": result.entries[0]["id"],
        "user_id": user.id,
        "date": "2025-10-06",
        "hours": 2.0,
        "task": "Bug fix",
        "notes": "Fixed issue #123",
        "tag": None,
        "status": "open",
        "invoice_id": None,
    }
    assert _entry_count(db) == 2

    record = db.query(BatchImport).one()
    assert record.idempotency_key == KEY
    assert record.entry_ids == [entry["id"] for entry in result.entries]
    assert record.entry_count == 2


def test_repeat_with_same_key_replays_without_writing(db, user):
    importer = BatchImporter(db)
    first = importer.import_entries(user, KEY, ROWS)

    second = importer.import_entries(user, KEY, ROWS)

    assert second.replayed is True
    assert second.entries == first.entries
    assert _entry_count(db) == 2
    assert db.query(BatchImport).count() == 1


def test_replay_ignores_a_changed_payload(db, user):
    importer = BatchImporter(db)
    first = importer.import_entries(user, KEY, ROWS)

    second = importer.import_entries(user, KEY, [Row("2025-10-08", 8, "Different")])

    assert second.entries == first.entries
    assert _entry_count(db) == 2


def test_key_owned_by_another_user_is_a_conflict(db, user, other_user):
    BatchImporter(db).import_entries(user, KEY, ROWS)

    with pytest.raises(IdempotencyKeyConflictError):
        BatchImporter(db).import_entries(other_user, KEY, ROWS)

    assert db.query(TimeEntry).filter(TimeEntry.user_id == other_user.id).count() == 0


def test_row_in_invoiced_period_rejects_whole_batch(db, user):
    InvoiceRepository(db).create_invoice(
        user.id,
        period_start=date(2025, 9, 29),
        period_end=date(2025, 10, 6),
        status=InvoiceStatus.SENT.value,
    )

    with pytest.raises(ImportRejectedError) as excinfo:
        BatchImporter(db).import_entries(user, KEY, ROWS)

    rejected = excinfo.value.rejected_rows
    assert [row["index"] for row in rejected] == [0]
    assert rejected[0]["errors"] == ["Billing period 2025-09-29 to 2025-10-06 is already invoiced"]
    assert _entry_count(db) == 0
    assert db.query(BatchImport).count() == 0


@pytest.mark.parametrize("status", [InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value])
def test_draft_or_cancelled_invoice_leaves_period_open(db, user, status):
    InvoiceRepository(db).create_invoice(
        user.id,
        period_start=date(2025, 10, 6),
        period_end=date(2025, 10, 12),
        status=status,
    )

    result = BatchImporter(db).import_entries(user, KEY, ROWS)

    assert len(result.entries) == 2


def test_invoice_of_another_user_does_not_close_period(db, user, other_user):
    InvoiceRepository(db).create_invoice(
        other_user.id,
        period_start=date(2025, 10, 6),
        period_end=date(2025, 10, 12),
        status=InvoiceStatus.PAID.value,
    )

    assert len(BatchImporter(db).import_entries(user, KEY, ROWS).entries) == 2


def test_user_deactivated_after_preview_rejects_every_row(db, session_factory, user):
    with session_factory() as admin_session:
        UserRepository(admin_session).set_active(admin_session.get(User, user.id), False)

    with pytest.raises(ImportRejectedError) as excinfo:
        BatchImporter(db).import_entries(user, KEY, ROWS)

    rejected = excinfo.value.rejected_rows
    assert [row["index"] for row in rejected] == [0, 1]
    assert all(INACTIVE_USER_ERROR in row["errors"] for row in rejected)
    assert _entry_count(db) == 0


def test_unparseable_date_rejects_batch(db, user):
    rows = [ROWS[0], Row("2025-02-30", 1, "Nope")]

    with pytest.raises(ImportRejectedError) as excinfo:
        BatchImporter(db).import_entries(user, KEY, rows)

    assert excinfo.value.rejected_rows == [
        {"index": 1, "date": "2025-02-30", "errors": ["Invalid calendar date: 2025-02-30"]}
    ]
    assert _entry_count(db) == 0


def test_hours_are_stored_with_two_decimals(db, user):
    result = BatchImporter(db).import_entries(user, KEY, [Row("2025-10-06", 1.333, "Thirds")])

    assert result.entries[0]["hours"] == 1.33


def test_import_writes_one_audit_event(db, user):
    BatchImporter(db).import_entries(user, KEY, ROWS, source_ip="10.0.0.1", request_id="req-1")

    event = db.query(AuditEvent).one()
    assert event.action == "batch_import"
    assert event.user_id == user.id
    assert event.source_ip == "10.0.0.1"
    assert event.details["entry_count"] == 2
    assert event.details["request_id"] == "req-1"
    assert KEY not in str(event.details)


def test_blank_key_is_refused(db, user):
    with pytest.raises(ValueError):
        BatchImporter(db).import_entries(user, "   ", ROWS)


def test_concurrent_winner_is_replayed(db, session_factory, user, monkeypatch):
    with session_factory() as winner_session:
        winner_user = winner_session.get(User, user.id)
        winner = BatchImporter(winner_session).import_entries(winner_user, KEY, ROWS)

    original_get_by_key = BatchImportRepository.get_by_key
    calls = {"count": 0}

    def get_by_key_missing_once(self, key):
        calls["count"] += 1
        if calls["count"] == 1:
            # The lookup ran before the winner committed.
            return None
        return original_get_by_key(self, key)

    monkeypatch.setattr(BatchImportRepository, "get_by_key", get_by_key_missing_once)

    result = BatchImporter(db).import_entries(user, KEY, ROWS)

    assert result.replayed is True
    assert result.entries == winner.entries
    assert _entry_count(db) == 2


def test_key_held_without_visible_outcome_reports_in_progress(db, session_factory, user, monkeypatch):
    with session_factory() as winner_session:
        BatchImporter(winner_session).import_entries(winner_session.get(User, user.id), KEY, ROWS)

    monkeypatch.setattr(BatchImportRepository, "get_by_key", lambda self, key: None)

    with pytest.raises(ImportInProgressError):
        BatchImporter(db).import_entries(user, KEY, ROWS)

    assert _entry_count(db) == 2


@pytest.mark.parametrize("hours", [float("nan"), float("inf"), 0, 24.01])
def test_out_of_range_hours_reject_batch_and_leave_key_unused(db, user, hours):
    rows = [ROWS[0], Row("2025-10-07", hours, "Overnight")]

    with pytest.raises(ImportRejectedError) as excinfo:
        BatchImporter(db).import_entries(user, KEY, rows)

    assert excinfo.value.rejected_rows == [
        {"index": 1, "date": "2025-10-07", "errors": ["Hours must be greater than 0 and at most 24"]}
    ]
    assert _entry_count(db) == 0

    result = BatchImporter(db).import_entries(user, KEY, ROWS)
    assert result.replayed is False


def test_entry_integrity_error_propagates_instead_of_reporting_in_progress(db, user, monkeypatch):
    def failing_add_entries(self, record, entries):
        raise IntegrityError("INSERT INTO time_entries", {}, Exception("NOT NULL constraint failed"))

    monkeypatch.setattr(BatchImportRepository, "add_entries", failing_add_entries)

    with pytest.raises(IntegrityError):
        BatchImporter(db).import_entries(user, KEY, ROWS)

    assert db.query(BatchImport).count() == 0
    assert _entry_count(db) == 0
