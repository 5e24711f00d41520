"""
Idempotent commit of previewed time entries.

The idempotency key row is inserted in the same transaction as the entries it
guards. Its unique constraint is the only mutual exclusion: whichever caller
commits first owns the key, and every later call with that key replays the
stored response instead of writing again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from persistence.models import BatchImport, User
from persistence.repository import (
    BatchImportRepository,
    InvoiceRepository,
    UserRepository,
    build_entry,
)
from shared.observability import hash_payload
from validation import HOURS_RANGE_ERROR, check_date_text, hours_in_range

logger = logging.getLogger(__name__)

INACTIVE_USER_ERROR = "User account is inactive"


class ImportRow(Protocol):
    date: str
    hours: float
    task: str
    notes: Optional[str]


class BatchImportError(Exception):
    """Base class for import failures that leave nothing persisted."""


class ImportRejectedError(BatchImportError):
    """One or more rows failed a commit-time check; the whole batch was refused."""

    def __init__(self, rejected_rows: List[Dict[str, Any]]) -> None:
        self.rejected_rows = rejected_rows
        indexes = ", ".join(str(row["index"]) for row in rejected_rows)
        super().__init__(f"Import rejected; rows failing commit-time checks: {indexes}")


class IdempotencyKeyConflictError(BatchImportError):
    """The key was already consumed by a different user."""


class ImportInProgressError(BatchImportError):
    """Another request holds the key but its outcome is not visible yet."""


@dataclass(slots=True)
class ImportResult:
    entries: List[Dict[str, Any]] = field(default_factory=list)
    replayed: bool = False


class BatchImporter:
    """Persists a confirmed batch exactly once per idempotency key."""

    def __init__(self, db: Session):
        self._db = db
        self._imports = BatchImportRepository(db)
        self._invoices = InvoiceRepository(db)
        self._users = UserRepository(db)

    def import_entries(
        self,
        user: User,
        idempotency_key: str,
        rows: Sequence[ImportRow],
        *,
        source_ip: str | None = None,
        request_id: str | None = None,
    ) -> ImportResult:
        key = idempotency_key.strip()
        if not key:
            raise ValueError("idempotency_key must be a non-empty string")

        existing = self._imports.get_by_key(key)
        if existing is not None:
            return self._replay(existing, user, request_id)

        work_dates = self._check_commit_time(user, rows)

        try:
            record = self._imports.claim_key(key, user.id)
        except IntegrityError:
            # Only the key insert can lose a race; any other integrity error propagates.
            self._db.rollback()
            winner = self._imports.get_by_key(key)
            if winner is None:
                raise ImportInProgressError(
                    "An import with this idempotency key is still in progress; retry shortly."
                ) from None
            logger.info(
                {
                    "event": "batch_import_race_replay",
                    "request_id": request_id,
                    "key_hash": hash_payload(key),
                    "batch_import_id": winner.id,
                }
            )
            return self._replay(winner, user, request_id)

        try:
            created = self._imports.add_entries(
                record,
                (
                    build_entry(user.id, work_date=work_date, hours=row.hours, task=row.task, notes=row.notes or "")
                    for row, work_date in zip(rows, work_dates)
                ),
            )
            self._imports.complete(
                record,
                created,
                source_ip=source_ip,
                details={"request_id": request_id, "key_hash": hash_payload(key)},
            )
        except SQLAlchemyError:
            self._db.rollback()
            raise

        logger.info(
            {
                "event": "batch_import_committed",
                "request_id": request_id,
                "user_id": user.id,
                "batch_import_id": record.id,
                "entry_count": record.entry_count,
                "key_hash": hash_payload(key),
            }
        )
        return ImportResult(entries=list(record.result or []), replayed=False)

    def _replay(self, record: BatchImport, user: User, request_id: str | None) -> ImportResult:
        if record.user_id != user.id:
            raise IdempotencyKeyConflictError("This idempotency key belongs to another import.")
        logger.info(
            {
                "event": "batch_import_replayed",
                "request_id": request_id,
                "user_id": user.id,
                "batch_import_id": record.id,
                "entry_count": record.entry_count,
            }
        )
        return ImportResult(entries=list(record.result or []), replayed=True)

    def _check_commit_time(self, user: User, rows: Sequence[ImportRow]) -> List[date]:
        """
        Re-check the facts that can change between preview and commit, plus
        the hours range, since rows need not come from a preview.

        Every row is checked before anything is written so the caller learns
        about all offending rows in one response.
        """

        current_user = self._users.reload(user.id)
        user_active = current_user is not None and current_user.is_active

        rejected: List[Dict[str, Any]] = []
        work_dates: List[date] = []
        for index, row in enumerate(rows):
            errors: List[str] = []
            if not user_active:
                errors.append(INACTIVE_USER_ERROR)
            if not hours_in_range(row.hours):
                errors.append(HOURS_RANGE_ERROR)

            work_date = _parse_work_date(row.date, errors)
            if work_date is not None:
                work_dates.append(work_date)
                invoice = self._invoices.find_closing_invoice(user.id, work_date)
                if invoice is not None:
                    errors.append(
                        f"Billing period {invoice.period_start.isoformat()} to "
                        f"{invoice.period_end.isoformat()} is already invoiced"
                    )

            if errors:
                rejected.append({"index": index, "date": row.date, "errors": errors})

        if rejected:
            logger.warning(
                {
                    "event": "batch_import_rejected",
                    "user_id": user.id,
                    "row_count": len(rows),
                    "rejected_count": len(rejected),
                }
            )
            raise ImportRejectedError(rejected)
        return work_dates


def _parse_work_date(date_text: str, errors: List[str]) -> date | None:
    date_error = check_date_text(date_text)
    if date_error:
        errors.append(date_error)
        return None
    return date.fromisoformat(date_text)
