"""
Line parser for free-form time entries.

Each accepted format is an explicit matcher; `LINE_MATCHERS` lists them in the
order they are tried and the first match wins. Adding a format means adding a
matcher to that tuple.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional

from models.time_entry import LineFormat, LineParseResult, ParsedCandidate, RawLine

DATE_PATTERN = r"(?P<date>\d{4}-\d{2}-\d{2})"
HOURS_PATTERN = r"(?P<hours>[+-]?(?:\d+(?:\.\d*)?|\.\d+))"
HOUR_SUFFIX_PATTERN = r"(?:h|hrs?)"
TRAILING_NOTES_PATTERN = r"(?:{sep}\s*(?P<notes>.*))?"

NO_HOURS_ERROR = "No numeric hours token found"
UNRECOGNIZED_FORMAT_ERROR = (
    "Unrecognized line format; expected 'hours h, task, notes', "
    "'YYYY-MM-DD, hours, task, notes' or 'hours | task | notes'"
)

_HOURS_TOKEN = re.compile(rf"^\s*{HOURS_PATTERN}\s*{HOUR_SUFFIX_PATTERN}?\s*$", re.IGNORECASE)
_FIELD_SEPARATORS = re.compile(r"[,|]")


@dataclass(frozen=True)
class LineMatcher:
    format: LineFormat
    pattern: re.Pattern[str]

    def match(self, text: str, today: date) -> Optional[ParsedCandidate]:
        found = self.pattern.match(text)
        if found is None:
            return None

        groups = found.groupdict()
        return ParsedCandidate(
            date=groups.get("date") or today.isoformat(),
            hours=float(groups["hours"]),
            task=(groups.get("task") or "").strip(),
            notes=(groups.get("notes") or "").strip(),
            format=self.format,
        )


def _csv_body(prefix: str) -> re.Pattern[str]:
    return re.compile(
        rf"^{prefix}\s*,\s*(?P<task>[^,]*?)\s*{TRAILING_NOTES_PATTERN.format(sep=',')}$",
        re.IGNORECASE,
    )


LINE_MATCHERS: tuple[LineMatcher, ...] = (
    LineMatcher(
        LineFormat.EXPLICIT_DATE_CSV,
        _csv_body(rf"{DATE_PATTERN}\s*,\s*{HOURS_PATTERN}\s*{HOUR_SUFFIX_PATTERN}?"),
    ),
    LineMatcher(LineFormat.HOUR_SUFFIX_CSV, _csv_body(rf"{HOURS_PATTERN}\s*{HOUR_SUFFIX_PATTERN}")),
    LineMatcher(LineFormat.PLAIN_CSV, _csv_body(HOURS_PATTERN)),
    LineMatcher(
        LineFormat.PIPE_DELIMITED,
        re.compile(
            rf"^(?:{DATE_PATTERN}\s*\|\s*)?{HOURS_PATTERN}\s*{HOUR_SUFFIX_PATTERN}?\s*\|"
            rf"\s*(?P<task>[^|]*?)\s*{TRAILING_NOTES_PATTERN.format(sep=re.escape('|'))}$",
            re.IGNORECASE,
        ),
    ),
    LineMatcher(
        LineFormat.HOUR_SUFFIX_FREEFORM,
        re.compile(
            rf"^{HOURS_PATTERN}\s*{HOUR_SUFFIX_PATTERN}\s+(?P<task>[^,|]+?)\s*(?:[,|]\s*(?P<notes>.*))?$",
            re.IGNORECASE,
        ),
    ),
)


def parse_line(text: str, today: date) -> LineParseResult:
    """
    Interpret one trimmed, non-empty line as a time entry.

    Returns a result holding either the candidate or a single error describing
    why no format matched. `today` fills in the date when the line omits one.
    """

    stripped = text.strip()
    for matcher in LINE_MATCHERS:
        candidate = matcher.match(stripped, today)
        if candidate is not None:
            return LineParseResult(candidate=candidate)
    return LineParseResult(error=_describe_failure(stripped))


def parse_fields(fields: Mapping[str, str], today: date) -> LineParseResult:
    """Interpret a tabular row whose cells were already mapped to entry fields."""

    hours_match = _HOURS_TOKEN.match(fields.get("hours") or "")
    if hours_match is None:
        return LineParseResult(error=NO_HOURS_ERROR)

    return LineParseResult(
        candidate=ParsedCandidate(
            date=(fields.get("date") or "").strip() or today.isoformat(),
            hours=float(hours_match.group("hours")),
            task=(fields.get("task") or "").strip(),
            notes=(fields.get("notes") or "").strip(),
            format=LineFormat.TABULAR,
        )
    )


def parse_raw_line(raw_line: RawLine, today: date) -> LineParseResult:
    if raw_line.fields is not None:
        return parse_fields(raw_line.fields, today)
    return parse_line(raw_line.text, today)


def _describe_failure(text: str) -> str:
    if any(_HOURS_TOKEN.match(field) for field in _FIELD_SEPARATORS.split(text)):
        return UNRECOGNIZED_FORMAT_ERROR
    return NO_HOURS_ERROR
