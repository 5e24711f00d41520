"""Pytest configuration for timesheet-service tests.

Ensures the service's own src directory takes precedence in sys.path
to avoid module name collisions with other services, and gives every test
its own SQLite database.
"""

import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

# Ensure this service's src (and the shared package root) are first in sys.path
SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
SERVICES_ROOT = Path(__file__).resolve().parents[2]
for path in (SERVICES_ROOT, SERVICE_SRC):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

os.environ.setdefault("TIMESHEET_DB_URL", "sqlite://")

from persistence.database import build_engine  # noqa: E402
from persistence.models import Base  # noqa: E402
from persistence.repository import UserRepository  # noqa: E402

TODAY = date(2025, 10, 8)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def engine(tmp_path: Path):
    engine = build_engine(f"sqlite:///{tmp_path / 'timesheet.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    return UserRepository(db).create_user("alex@example.com", name="Alex")


@pytest.fixture
def other_user(db):
    return UserRepository(db).create_user("sam@example.com", name="Sam")
