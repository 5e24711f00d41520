from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class LineFormat(str, Enum):
    """Accepted shapes for a single free-form time entry line."""

    EXPLICIT_DATE_CSV = "explicit_date_csv"
    HOUR_SUFFIX_CSV = "hour_suffix_csv"
    PLAIN_CSV = "plain_csv"
    PIPE_DELIMITED = "pipe_delimited"
    HOUR_SUFFIX_FREEFORM = "hour_suffix_freeform"
    TABULAR = "tabular"


@dataclass(frozen=True, slots=True)
class RawLine:
    """One non-blank line of user text, or one data row of a CSV upload."""

    line_number: int
    text: str
    fields: dict[str, str] | None = None


@dataclass(slots=True)
class ParsedCandidate:
    """A time entry as interpreted from a RawLine, before business rules run."""

    date: str
    hours: float
    task: str
    notes: str = ""
    format: LineFormat = LineFormat.PLAIN_CSV

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "hours": self.hours, "task": self.task, "notes": self.notes}


@dataclass(slots=True)
class LineParseResult:
    candidate: ParsedCandidate | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.candidate is not None


@dataclass(slots=True)
class ValidationOutcome:
    valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationOutcome":
        return cls(valid=not errors, errors=list(errors))


@dataclass(slots=True)
class PreviewRow:
    line: int
    valid: bool
    parsed: ParsedCandidate | None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "line": self.line,
            "valid": self.valid,
            "parsed": self.parsed.to_dict() if self.parsed else None,
            "errors": list(self.errors),
        }


@dataclass(frozen=True, slots=True)
class PreviewSummary:
    total: int = 0
    valid: int = 0
    invalid: int = 0

    @classmethod
    def from_rows(cls, rows: list[PreviewRow]) -> "PreviewSummary":
        valid = sum(1 for row in rows if row.valid)
        return cls(total=len(rows), valid=valid, invalid=len(rows) - valid)

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "valid": self.valid, "invalid": self.invalid}


@dataclass(slots=True)
class PreviewReport:
    """Per-line outcome of a dry run; the summary is always derived from the rows."""

    rows: list[PreviewRow] = field(default_factory=list)

    @property
    def summary(self) -> PreviewSummary:
        return PreviewSummary.from_rows(self.rows)

    @property
    def valid_candidates(self) -> list[ParsedCandidate]:
        return [row.parsed for row in self.rows if row.valid and row.parsed is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [row.to_dict() for row in self.rows],
            "summary": self.summary.to_dict(),
        }
