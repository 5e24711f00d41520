#!/usr/bin/env python3
"""
Smoke test for the timesheet batch import flow.

Previews each file against a running service, imports the valid rows under a
fresh idempotency key, then repeats the import to confirm the replay returns
the same entries.
"""

import argparse
import json
import os
import sys
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

REPO_ROOT = Path(__file__).resolve().parents[1]
SERVICE_SRC = REPO_ROOT / "services" / "timesheet-service" / "src"

SERVICE_URL = os.getenv("TIMESHEET_URL", "http://localhost:8000")
DEFAULT_TIMEOUT = 30.0
REPLAY_HEADER = "Idempotent-Replayed"


class SmokeError(Exception):
    """Raised when the service does not behave as expected."""


class BatchImportSmoke:
    """Drives preview and import for one or more files."""

    def __init__(self, service_url: str, user_id: int, timeout: float = DEFAULT_TIMEOUT):
        self.service_url = service_url.rstrip("/")
        self.client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"x-user-id": str(user_id)},
        )
        self.results: List[Dict[str, Any]] = []

    def check_health(self) -> None:
        try:
            response = self.client.get(f"{self.service_url}/health")
            response.raise_for_status()
        except httpx.RequestError as e:
            raise SmokeError(f"Cannot connect to service at {self.service_url}: {e}")
        data = response.json()
        if data.get("status") != "ok":
            raise SmokeError(f"Health check failed: {data}")
        print("✓ Timesheet service is healthy")

    def preview_file(self, file_path: Path) -> Dict[str, Any]:
        print(f"  Previewing {file_path.name}...")
        content_type = "text/csv" if file_path.suffix == ".csv" else "text/plain"
        with open(file_path, "rb") as f:
            files = {"file": (file_path.name, f, content_type)}
            response = self.client.post(f"{self.service_url}/entries/batch/preview-file", files=files)
        _raise_for_error(response)

        data = response.json()
        summary = data["summary"]
        print(f"    ✓ {summary['valid']} valid / {summary['invalid']} invalid of {summary['total']} rows")
        for row in data["rows"]:
            if not row["valid"]:
                print(f"      - line {row['line']}: {'; '.join(row['errors'])}")
        return data

    def import_rows(self, rows: List[Dict[str, Any]], idempotency_key: str) -> tuple[List[Dict[str, Any]], bool]:
        response = self.client.post(
            f"{self.service_url}/entries/batch/import",
            json={"idempotencyKey": idempotency_key, "rows": rows},
        )
        _raise_for_error(response)
        return response.json(), response.headers.get(REPLAY_HEADER) == "true"

    def run_file(self, file_path: Path) -> Dict[str, Any]:
        print(f"\n{'='*60}")
        print(f"File: {file_path.name}")
        print(f"{'='*60}\n")

        start_time = time.time()
        try:
            preview = self.preview_file(file_path)
            rows = [row["parsed"] for row in preview["rows"] if row["valid"]]
            if not rows:
                raise SmokeError("No valid rows to import")

            key = str(uuid.uuid4())
            print(f"  Importing {len(rows)} row(s) with key {key}...")
            entries, replayed = self.import_rows(rows, key)
            if replayed:
                raise SmokeError("First import was reported as a replay")
            print(f"    ✓ Created {len(entries)} entries")

            print("  Retrying the same import...")
            replay_entries, replayed = self.import_rows(rows, key)
            if not replayed or replay_entries != entries:
                raise SmokeError("Retry did not replay the original result")
            print("    ✓ Retry replayed the original result")

            duration = time.time() - start_time
            return {
                "file": file_path.name,
                "duration_seconds": round(duration, 2),
                "summary": preview["summary"],
                "entry_ids": [entry["id"] for entry in entries],
                "errors": [],
                "success": True,
            }
        except (SmokeError, httpx.HTTPError) as e:
            duration = time.time() - start_time
            print(f"\n✗ Smoke run failed: {e}\n")
            return {
                "file": file_path.name,
                "duration_seconds": round(duration, 2),
                "errors": [str(e)],
                "success": False,
            }

    def run_all(self, file_paths: List[Path], output_file: Optional[Path] = None) -> Dict[str, Any]:
        self.check_health()

        for file_path in file_paths:
            if not file_path.exists():
                print(f"✗ File not found: {file_path}")
                continue
            self.results.append(self.run_file(file_path))

        successful = sum(1 for r in self.results if r["success"])
        report = {
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
            "service_url": self.service_url,
            "total_files": len(self.results),
            "successful": successful,
            "failed": len(self.results) - successful,
            "results": self.results,
        }

        if output_file:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(output_file, "w") as f:
                json.dump(report, f, indent=2)
            print(f"Report saved to: {output_file}")

        print("\n" + "=" * 60)
        print(f"Files: {report['total_files']}  Successful: {successful}  Failed: {report['failed']}")
        print("=" * 60)
        return report


def _raise_for_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
    except ValueError:
        body = response.text
    raise SmokeError(f"{response.request.method} {response.request.url.path} returned {response.status_code}: {body}")


def seed_user(email: str) -> int:
    """Create (or find) a user directly in the database named by TIMESHEET_DB_URL."""
    for path in (SERVICE_SRC, SERVICE_SRC.parents[1]):
        if str(path) not in sys.path:
            sys.path.insert(0, str(path))

    from persistence.database import SessionLocal, init_db
    from persistence.models import User
    from persistence.repository import UserRepository
    from sqlalchemy import select

    init_db()
    with SessionLocal() as db:
        existing = db.scalars(select(User).where(User.email == email)).first()
        if existing is not None:
            return existing.id
        return UserRepository(db).create_user(email).id


def main():
    parser = argparse.ArgumentParser(description="Preview and import timesheet files against a running service")
    parser.add_argument("files", nargs="+", type=Path, help="Text or CSV files with time entries")
    parser.add_argument("--service", default=SERVICE_URL, help=f"Service URL (default: {SERVICE_URL})")
    parser.add_argument("--user-id", type=int, default=os.getenv("TIMESHEET_USER_ID"), help="Acting user id")
    parser.add_argument("--seed-email", help="Create or reuse a local user with this email and act as them")
    parser.add_argument("--output", type=Path, help="Output file for the JSON report")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Request timeout in seconds")

    args = parser.parse_args()

    user_id = seed_user(args.seed_email) if args.seed_email else args.user_id
    if user_id is None:
        parser.error("provide --user-id, TIMESHEET_USER_ID, or --seed-email")

    smoke = BatchImportSmoke(args.service, int(user_id), timeout=args.timeout)
    try:
        report = smoke.run_all(args.files, output_file=args.output)
    except SmokeError as e:
        print(f"✗ {e}")
        sys.exit(1)

    if report["failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
