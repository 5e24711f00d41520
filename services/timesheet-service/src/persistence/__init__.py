"""Persistence primitives for the timesheet service."""

from persistence.database import (
    SessionLocal,
    build_engine,
    get_engine,
    get_session,
    init_db,
)
from persistence.models import AuditEvent, Base, BatchImport, Invoice, TimeEntry, User

__all__ = [
    "AuditEvent",
    "Base",
    "BatchImport",
    "Invoice",
    "SessionLocal",
    "TimeEntry",
    "User",
    "build_engine",
    "get_engine",
    "get_session",
    "init_db",
]
