import hashlib
import json
from typing import Any


def hash_payload(value: Any) -> str:
    """
    Return a stable SHA-256 hash for the provided payload without leaking contents.

    Strings are encoded as UTF-8, bytes are used as-is, and arbitrary objects are
    serialized via JSON (falling back to repr()) before hashing.
    """

    if value is None:
        normalized = b"null"
    elif isinstance(value, bytes):
        normalized = value
    elif isinstance(value, str):
        normalized = value.encode("utf-8")
    else:
        try:
            normalized = json.dumps(value, sort_keys=True, default=str).encode("utf-8")
        except TypeError:
            normalized = repr(value).encode("utf-8")

    return hashlib.sha256(normalized).hexdigest()


def describe_text(text: str) -> dict[str, Any]:
    """
    Summarize user-entered text for logs: size and digest, never the content.

    Task names and notes can carry client details, so handlers log this instead.
    """

    return {
        "chars": len(text),
        "lines": text.count("\n") + 1 if text else 0,
        "sha256": hash_payload(text),
    }
