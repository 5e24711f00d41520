"""Pytest configuration for root-level integration tests.

Adds the timesheet service src directory and the shared package root to sys.path.
"""

import os
import sys
from pathlib import Path

SERVICES_ROOT = Path(__file__).resolve().parents[1] / "services"

SERVICE_PATHS = [
    SERVICES_ROOT / "timesheet-service" / "src",
    SERVICES_ROOT,
]

for path in SERVICE_PATHS:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

os.environ.setdefault("TIMESHEET_DB_URL", "sqlite://")
