import logging
import os
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

SRC_DIR = Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

SERVICES_ROOT = SRC_DIR.parents[1]
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

from auth import AuthError, get_current_user
from deadlines import deadline_snapshot
from importer import (
    BatchImporter,
    BatchImportError,
    IdempotencyKeyConflictError,
    ImportInProgressError,
    ImportRejectedError,
)
from middleware.rate_limit import SimpleRateLimiter, build_default_rate_limiter
from parsers.text_source import decode_bytes
from persistence.database import get_engine, get_session, init_db
from persistence.models import User
from persistence.repository import TimeEntryRepository, entry_to_dict
from preview import build_preview, preview_csv, preview_text
from settings import TimesheetSettings, load_settings
from shared.observability import (
    add_request_context_middleware,
    describe_text,
    ensure_request_id,
    instrument_engine,
    setup_telemetry,
)
from validation import validate_entry

logger = logging.getLogger(__name__)

SERVICE_NAME = "timesheet-service"
REPLAY_HEADER = "Idempotent-Replayed"

app = FastAPI(title="Timesheet Service")
setup_telemetry(app, service_name=SERVICE_NAME)
app.state.settings = load_settings()
app.state.rate_limiter = build_default_rate_limiter(app.state.settings)


DEFAULT_CORS_ORIGINS: List[str] = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

CORS_ENV_KEYS = (
    "TIMESHEET_CORS_ORIGINS",
    "CORS_ALLOWED_ORIGINS",
    "CORS_ORIGINS",
)

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}
TEXT_CONTENT_TYPES = {
    "text/plain",
}


def _resolve_cors_origins() -> List[str]:
    """
    Determine which origins are allowed to call the service.

    Developers can provide a comma-separated list via any env var in `CORS_ENV_KEYS`.
    Falls back to localhost-friendly defaults so the frontend dev server can talk to the API.
    """

    for key in CORS_ENV_KEYS:
        raw_value = os.getenv(key)
        if not raw_value:
            continue
        candidates = [origin.strip() for origin in raw_value.split(",")]
        origins = [origin for origin in candidates if origin]
        if origins:
            # FastAPI expects ["*"] instead of mixing '*' with explicit origins.
            if any(origin == "*" for origin in origins):
                return ["*"]
            return origins
    return DEFAULT_CORS_ORIGINS


add_request_context_middleware(app)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    limiter: SimpleRateLimiter = app.state.rate_limiter
    client_id = _client_ip(request) or "unknown"
    allowed, retry_after = await limiter.allow(client_id)
    if allowed:
        return await call_next(request)

    retry_after_header = str(max(1, int(retry_after or 1)))
    logger.warning(
        {
            "event": "rate_limited",
            "request_id": ensure_request_id(request),
            "client_ip": client_id,
            "retry_after_seconds": retry_after,
        }
    )
    response = error_response(
        429,
        "rate_limit_exceeded",
        "Too many requests. Please retry shortly.",
    )
    response.headers["Retry-After"] = retry_after_header
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REPLAY_HEADER, "x-request-id"],
    allow_credentials=False,
)


def error_response(status_code: int, error_code: str, details: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details, **extra},
    )


def _client_ip(request: Request) -> str | None:
    client = request.client
    if client:
        return client.host
    return None


def get_settings() -> TimesheetSettings:
    return app.state.settings


def get_now(settings: TimesheetSettings = Depends(get_settings)) -> datetime:
    """Current wall-clock time in the configured zone; overridden in tests."""
    return datetime.now(settings.zone)


def get_today(now: datetime = Depends(get_now)) -> date:
    return now.date()


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    detail: Dict[str, str] = exc.detail  # type: ignore[assignment]
    return error_response(exc.status_code, detail["error"], detail["details"])


@app.exception_handler(BatchImportError)
async def batch_import_error_handler(request: Request, exc: BatchImportError) -> JSONResponse:
    if isinstance(exc, ImportRejectedError):
        return error_response(422, "import_rejected", str(exc), rejected_rows=exc.rejected_rows)
    if isinstance(exc, IdempotencyKeyConflictError):
        return error_response(409, "idempotency_key_conflict", str(exc))
    if isinstance(exc, ImportInProgressError):
        return error_response(409, "import_in_progress", str(exc))
    return error_response(400, "import_failed", str(exc))


@app.on_event("startup")
def on_startup() -> None:
    """Initialize persistence before serving requests."""
    init_db()
    instrument_engine(get_engine())


@app.get("/health")
def health_check() -> dict:
    """Reports service uptime so orchestrators can confirm this entrypoint is available."""
    return {"status": "ok", "service": SERVICE_NAME}


@app.get("/deadlines/current")
def current_deadline(
    now: datetime = Depends(get_now),
    settings: TimesheetSettings = Depends(get_settings),
) -> Dict[str, str]:
    """Reports the work week containing now, its invoice due date, and how close it is."""
    return deadline_snapshot(now, settings.deadline_warn_hours)


class EntryPayload(BaseModel):
    hours: Optional[float] = None
    task: Optional[str] = None
    notes: Optional[str] = ""
    date: Optional[str] = None
    tag: Optional[str] = Field(default=None, max_length=64)


@app.get("/entries", response_model=None)
def list_entries(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> List[Dict[str, Any]]:
    return [entry_to_dict(entry) for entry in TimeEntryRepository(db).list_entries(user.id)]


@app.post("/entries", response_model=None)
def create_entry(
    payload: EntryPayload,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
    today: date = Depends(get_today),
) -> JSONResponse:
    """Creates a single entry under the same rules the batch preview applies."""
    date_text = payload.date or today.isoformat()
    outcome = validate_entry(hours=payload.hours, task=payload.task, notes=payload.notes, date_text=date_text)
    if not outcome.valid:
        return error_response(400, "invalid_entry", "Entry failed validation.", errors=outcome.errors)

    entry = TimeEntryRepository(db).create_entry(
        user,
        work_date=date.fromisoformat(date_text),
        hours=payload.hours,  # type: ignore[arg-type]
        task=payload.task or "",
        notes=payload.notes or "",
        tag=payload.tag,
        source_ip=_client_ip(request),
    )
    logger.info(
        {
            "event": "entry_created",
            "request_id": ensure_request_id(request),
            "user_id": user.id,
            "entry_id": entry.id,
        }
    )
    return JSONResponse(status_code=201, content=entry_to_dict(entry))


@app.delete("/entries/{entry_id}", response_model=None)
def delete_entry(
    entry_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> Dict[str, str] | JSONResponse:
    repo = TimeEntryRepository(db)
    entry = repo.get_entry(entry_id, user.id)
    if entry is None:
        return error_response(404, "entry_not_found", "Entry not found.")
    if entry.is_invoiced:
        return error_response(400, "entry_invoiced", "Cannot delete invoiced entry.")

    repo.delete_entry(entry, source_ip=_client_ip(request))
    return {"message": "Entry deleted"}


class PreviewInput(BaseModel):
    kind: Literal["text", "csv"] = "text"
    data: str = ""


class PreviewPayload(BaseModel):
    mode: Literal["deterministic"] = "deterministic"
    input: PreviewInput


@app.post("/entries/batch/preview", response_model=None)
def preview_batch(
    payload: PreviewPayload,
    request: Request,
    user: User = Depends(get_current_user),
    today: date = Depends(get_today),
) -> Dict[str, Any]:
    """Parses and validates pasted entries without saving anything."""
    report = build_preview(payload.input.kind, payload.input.data, today)
    summary = report.summary
    logger.info(
        {
            "event": "batch_preview",
            "request_id": ensure_request_id(request),
            "user_id": user.id,
            "kind": payload.input.kind,
            "input": describe_text(payload.input.data),
            **summary.to_dict(),
        }
    )
    return report.to_dict()


@app.post("/entries/batch/preview-file", response_model=None)
async def preview_batch_file(
    request: Request,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    today: date = Depends(get_today),
) -> Dict[str, Any] | JSONResponse:
    """
    Preview an uploaded CSV or plain-text file.
    Expects a multipart/form-data payload with a single `file` field.
    """
    parser_kind = _determine_parser_kind(file)
    if parser_kind is None:
        return error_response(400, "unsupported_file_type", "Upload a CSV or plain-text file.")

    file_bytes = await file.read()
    if not file_bytes:
        return error_response(400, "file_empty", "Uploaded file is empty.")

    text = decode_bytes(file_bytes)
    report = preview_csv(text, today) if parser_kind == "csv" else preview_text(text, today)
    logger.info(
        {
            "event": "batch_preview_file",
            "request_id": ensure_request_id(request),
            "user_id": user.id,
            "kind": parser_kind,
            "input": describe_text(text),
            **report.summary.to_dict(),
        }
    )
    return report.to_dict()


def _determine_parser_kind(file: UploadFile) -> Optional[str]:
    content_type = (file.content_type or "").lower()
    filename = (file.filename or "").lower()

    if content_type in CSV_CONTENT_TYPES or filename.endswith(".csv"):
        return "csv"
    if content_type in TEXT_CONTENT_TYPES or filename.endswith(".txt"):
        return "text"
    return None


class ImportRowPayload(BaseModel):
    date: str
    hours: float
    task: str
    notes: Optional[str] = ""


class ImportPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    idempotency_key: str = Field(alias="idempotencyKey", min_length=1, max_length=128, pattern=r"^\s*\S")
    rows: List[ImportRowPayload] = Field(default_factory=list)


@app.post("/entries/batch/import", response_model=None)
def import_batch(
    payload: ImportPayload,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> JSONResponse:
    """Commits previewed rows once per idempotency key; retries replay the first response."""
    if not payload.rows:
        return error_response(400, "no_rows", "No entries to import.")

    result = BatchImporter(db).import_entries(
        user,
        payload.idempotency_key,
        payload.rows,
        source_ip=_client_ip(request),
        request_id=ensure_request_id(request),
    )
    return JSONResponse(
        status_code=200,
        content=result.entries,
        headers={REPLAY_HEADER: "true" if result.replayed else "false"},
    )
