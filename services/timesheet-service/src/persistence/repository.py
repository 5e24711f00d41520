"""Data access helpers for users, time entries, invoices, and batch imports."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from persistence.models import AuditEvent, BatchImport, Invoice, TimeEntry, User


class EntryStatus(str, Enum):
    """Invoicing lifecycle of a time entry."""

    OPEN = "open"
    INVOICED = "invoiced"
    PAID = "paid"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


OPEN_INVOICE_STATUSES = frozenset({InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value})


def entry_to_dict(entry: TimeEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "date": entry.work_date.isoformat(),
        "hours": float(entry.hours),
        "task": entry.task,
        "notes": entry.notes,
        "tag": entry.tag,
        "status": entry.status,
        "invoice_id": entry.invoice_id,
    }


class UserRepository:
    def __init__(self, db: Session):
        self._db = db

    def get_user(self, user_id: int) -> User | None:
        return self._db.get(User, user_id)

    def reload(self, user_id: int) -> User | None:
        """Fetch the user bypassing the identity map so concurrent deactivation is seen."""
        return self._db.get(User, user_id, populate_existing=True)

    def create_user(self, email: str, *, name: str | None = None, role: str = "user") -> User:
        user = User(email=email, name=name, role=role, is_active=True)
        self._db.add(user)
        self._db.commit()
        self._db.refresh(user)
        return user

    def set_active(self, user: User, is_active: bool) -> User:
        user.is_active = is_active
        self._db.add(user)
        self._db.commit()
        return user


class TimeEntryRepository:
    """Thin repository that encapsulates time entry persistence operations."""

    def __init__(self, db: Session):
        self._db = db

    def list_entries(self, user_id: int) -> list[TimeEntry]:
        stmt = (
            select(TimeEntry)
            .where(TimeEntry.user_id == user_id)
            .order_by(TimeEntry.work_date.desc(), TimeEntry.id.desc())
        )
        return list(self._db.scalars(stmt))

    def get_entry(self, entry_id: int, user_id: int) -> TimeEntry | None:
        entry = self._db.get(TimeEntry, entry_id)
        if entry is None or entry.user_id != user_id:
            return None
        return entry

    def create_entry(
        self,
        user: User,
        *,
        work_date: date,
        hours: float,
        task: str,
        notes: str = "",
        tag: str | None = None,
        source_ip: str | None = None,
    ) -> TimeEntry:
        entry = build_entry(user.id, work_date=work_date, hours=hours, task=task, notes=notes, tag=tag)
        self._db.add(entry)
        self._db.flush()
        record_event(
            self._db,
            action="entry_created",
            user_id=user.id,
            source_ip=source_ip,
            details={"entry_id": entry.id, "date": work_date.isoformat(), "hours": entry.hours},
        )
        self._db.commit()
        self._db.refresh(entry)
        return entry

    def delete_entry(self, entry: TimeEntry, *, source_ip: str | None = None) -> None:
        record_event(
            self._db,
            action="entry_deleted",
            user_id=entry.user_id,
            source_ip=source_ip,
            details={"entry_id": entry.id, "date": entry.work_date.isoformat()},
        )
        self._db.delete(entry)
        self._db.commit()


class InvoiceRepository:
    def __init__(self, db: Session):
        self._db = db

    def create_invoice(
        self,
        user_id: int,
        *,
        period_start: date,
        period_end: date,
        status: str = InvoiceStatus.DRAFT.value,
    ) -> Invoice:
        invoice = Invoice(user_id=user_id, period_start=period_start, period_end=period_end, status=status)
        self._db.add(invoice)
        self._db.commit()
        self._db.refresh(invoice)
        return invoice

    def find_closing_invoice(self, user_id: int, day: date) -> Invoice | None:
        """Return a submitted invoice whose period covers `day`, if any."""
        stmt = (
            select(Invoice)
            .where(
                Invoice.user_id == user_id,
                Invoice.period_start <= day,
                Invoice.period_end >= day,
                Invoice.status.not_in(OPEN_INVOICE_STATUSES),
            )
            .order_by(Invoice.id)
            .limit(1)
        )
        return self._db.scalars(stmt).first()


class BatchImportRepository:
    def __init__(self, db: Session):
        self._db = db

    def get_by_key(self, idempotency_key: str) -> BatchImport | None:
        stmt = select(BatchImport).where(BatchImport.idempotency_key == idempotency_key)
        return self._db.scalars(stmt).first()

    def claim_key(self, idempotency_key: str, user_id: int) -> BatchImport:
        """
        Insert the key row and flush so the unique constraint is enforced now.

        Raises IntegrityError when another transaction already holds the key.
        """
        record = BatchImport(idempotency_key=idempotency_key, user_id=user_id, entry_count=0)
        self._db.add(record)
        self._db.flush()
        return record

    def add_entries(self, record: BatchImport, entries: Iterable[TimeEntry]) -> list[TimeEntry]:
        created = list(entries)
        for entry in created:
            entry.batch_import_id = record.id
            self._db.add(entry)
        self._db.flush()
        return created

    def complete(
        self,
        record: BatchImport,
        created: Sequence[TimeEntry],
        *,
        source_ip: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> BatchImport:
        record.entry_ids = [entry.id for entry in created]
        record.entry_count = len(created)
        record.result = [entry_to_dict(entry) for entry in created]
        self._db.add(record)
        record_event(
            self._db,
            action="batch_import",
            user_id=record.user_id,
            source_ip=source_ip,
            details={"batch_import_id": record.id, "entry_count": len(created), **(details or {})},
        )
        self._db.commit()
        return record


def build_entry(
    user_id: int,
    *,
    work_date: date,
    hours: float,
    task: str,
    notes: str = "",
    tag: str | None = None,
) -> TimeEntry:
    return TimeEntry(
        user_id=user_id,
        work_date=work_date,
        hours=round(float(hours), 2),
        task=task.strip(),
        notes=(notes or "").strip(),
        tag=tag,
        status=EntryStatus.OPEN.value,
    )


def record_event(
    db: Session,
    *,
    action: str,
    user_id: int | None,
    source_ip: str | None,
    details: dict[str, Any] | None,
) -> None:
    db.add(
        AuditEvent(
            user_id=user_id,
            action=action,
            source_ip=source_ip,
            details=details,
        )
    )
