"""
Shared utilities for the timesheet services.

- observability: JSON logging with request ids, tracing, and privacy helpers
"""

from .observability import describe_text, hash_payload, setup_telemetry

__all__ = [
    "describe_text",
    "hash_payload",
    "setup_telemetry",
]
