"""
Dry-run preview of a batch of time entries.

Nothing here touches storage or the clock: callers pass `today`, so the same
input always produces the same report.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from models.time_entry import PreviewReport, PreviewRow, RawLine
from parsers.line_parser import parse_raw_line
from parsers.text_source import read_csv_lines, split_text_lines
from validation import validate_candidate


def preview_lines(raw_lines: Iterable[RawLine], today: date) -> PreviewReport:
    rows: list[PreviewRow] = []
    for raw_line in raw_lines:
        result = parse_raw_line(raw_line, today)
        if not result.ok:
            rows.append(
                PreviewRow(line=raw_line.line_number, valid=False, parsed=None, errors=[result.error] if result.error else [])
            )
            continue

        outcome = validate_candidate(result.candidate)
        rows.append(
            PreviewRow(
                line=raw_line.line_number,
                valid=outcome.valid,
                parsed=result.candidate,
                errors=outcome.errors,
            )
        )
    return PreviewReport(rows=rows)


def preview_text(text: str, today: date) -> PreviewReport:
    """Preview a newline-delimited blob; blank lines produce no rows."""
    return preview_lines(split_text_lines(text), today)


def preview_csv(text: str, today: date) -> PreviewReport:
    """Preview a CSV document, mapping header columns when a header is present."""
    return preview_lines(read_csv_lines(text), today)


PREVIEW_KINDS = {
    "text": preview_text,
    "csv": preview_csv,
}


def build_preview(kind: str, data: str, today: date) -> PreviewReport:
    try:
        handler = PREVIEW_KINDS[kind]
    except KeyError as exc:
        raise ValueError(f"Unsupported preview input kind: {kind}") from exc
    return handler(data, today)
