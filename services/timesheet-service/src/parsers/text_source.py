from __future__ import annotations

import csv
from io import StringIO
from typing import Iterable, List, Optional, Sequence

from models.time_entry import RawLine

DateHeaders = ("date", "day", "work date", "entry date")
HoursHeaders = ("hours", "hrs", "duration", "time")
TaskHeaders = ("task", "task name", "description", "project")
NotesHeaders = ("notes", "note", "comments", "memo")


def split_text_lines(text: str) -> List[RawLine]:
    """
    Split a newline-delimited blob into RawLines numbered as the user sees them.

    Blank and whitespace-only lines are dropped, so numbering may skip.
    """

    raw_lines: List[RawLine] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped:
            continue
        raw_lines.append(RawLine(line_number=line_number, text=stripped))
    return raw_lines


def read_csv_lines(text: str) -> List[RawLine]:
    """
    Read a CSV document into RawLines.

    When the first non-empty row is a header naming an hours and a task column,
    every data row carries its mapped cells in `fields`. Otherwise the document
    is treated as free-form text, one entry per line.
    """

    reader = csv.reader(StringIO(text))
    header = next((row for row in reader if any(cell.strip() for cell in row)), None)
    if not header:
        return split_text_lines(text)

    hours_index = _find_column(header, HoursHeaders)
    task_index = _find_column(header, TaskHeaders)
    if hours_index is None or task_index is None:
        return split_text_lines(text)

    columns = {
        "date": _find_column(header, DateHeaders),
        "hours": hours_index,
        "task": task_index,
        "notes": _find_column(header, NotesHeaders),
    }

    raw_lines: List[RawLine] = []
    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        fields = {name: _cell(row, index) for name, index in columns.items()}
        raw_lines.append(
            RawLine(
                # reader.line_num is the physical line the row ended on.
                line_number=reader.line_num,
                text=",".join(row),
                fields=fields,
            )
        )
    return raw_lines


def decode_bytes(file_bytes: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return file_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    # Fall back to ignoring errors to keep the pipeline moving.
    return file_bytes.decode("utf-8", errors="ignore")


def _find_column(headers: Sequence[str], candidates: Iterable[str]) -> Optional[int]:
    lowered = {header.lower().strip(): index for index, header in enumerate(headers)}
    for candidate in candidates:
        normalized = candidate.lower().strip()
        if normalized in lowered:
            return lowered[normalized]
    return None


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()
