"""
Shared observability helpers (telemetry, privacy utilities, etc.).

Services import from this package to enable consistent instrumentation and
logging guardrails.
"""

from .privacy import describe_text, hash_payload
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextToken,
    add_request_context_middleware,
    bind_request_context,
    ensure_request_id,
    instrument_engine,
    reset_request_context,
    setup_telemetry,
)

__all__ = [
    "describe_text",
    "hash_payload",
    "CORRELATION_ID_HEADER",
    "RequestContextToken",
    "add_request_context_middleware",
    "bind_request_context",
    "ensure_request_id",
    "instrument_engine",
    "reset_request_context",
    "setup_telemetry",
]
