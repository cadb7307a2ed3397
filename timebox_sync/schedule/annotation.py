"""Scheduling annotation line: ``SCHEDULED: <YYYY-MM-DD Wkd[ HH:MM][ repeat]>``.

The bracket body is split into whitespace tokens and each token is matched by
its own small rule (date, weekday word, time of day, repeat token), so every
grammar rule can be tested on its own.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from ..models import ScheduleInfo
from .duration import parse_duration_token
from .titles import extract_title_line

logger = logging.getLogger(__name__)

SCHEDULED_KEYWORD = "SCHEDULED"

WEEKDAY_ABBREVIATIONS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_ANNOTATION_LINE_RE = re.compile(r"^\s*SCHEDULED:\s*<(?P<body>[^>]*)>")
_DATE_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})$")
_WEEKDAY_RE = re.compile(r"^[A-Za-z]+\.?$")
_TIME_RE = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})(?:-\d{1,2}:\d{2})?$")
# Repeat styles: "+" (strict), "++" (catch up past today), ".+" (restart from completion)
_REPEAT_RE = re.compile(r"^(?P<style>\+\+|\.\+|\+)(?P<count>\d+)(?P<unit>[hdwmy])$")


@dataclass(frozen=True)
class AnnotationTokens:
    """Parsed pieces of one annotation bracket body."""

    day: date
    weekday: Optional[str] = None
    time_of_day: Optional[time] = None
    repeater: Optional[str] = None


def find_annotation_line(content: str) -> Optional[tuple[int, re.Match]]:
    """Locate the first scheduling annotation line: (line index, match) or None."""
    for index, line in enumerate((content or "").split("\n")):
        match = _ANNOTATION_LINE_RE.match(line)
        if match:
            return index, match
    return None


def parse_date_token(token: str) -> Optional[date]:
    match = _DATE_RE.match(token)
    if not match:
        return None
    try:
        return date(int(match["year"]), int(match["month"]), int(match["day"]))
    except ValueError:
        return None


def parse_time_token(token: str) -> Optional[time]:
    match = _TIME_RE.match(token)
    if not match:
        return None
    try:
        return time(int(match["hour"]), int(match["minute"]))
    except ValueError:
        return None


def parse_repeat_token(token: str) -> Optional[str]:
    """Return the token verbatim when it is a repeat token, else None."""
    return token if _REPEAT_RE.match(token) else None


def tokenize_annotation_body(body: str) -> Optional[AnnotationTokens]:
    """Split the bracket body into annotation tokens.

    The first token must be a date. Weekday, time and repeat tokens are optional
    and recognized in any order after it; anything else is ignored.
    """
    tokens = body.split()
    if not tokens:
        return None
    day = parse_date_token(tokens[0])
    if day is None:
        return None

    weekday: Optional[str] = None
    time_of_day: Optional[time] = None
    repeater: Optional[str] = None
    for token in tokens[1:]:
        if repeater is None and parse_repeat_token(token):
            repeater = token
        elif time_of_day is None and parse_time_token(token) is not None:
            time_of_day = parse_time_token(token)
        elif weekday is None and _WEEKDAY_RE.match(token):
            weekday = token
        else:
            logger.debug("Ignoring unrecognized annotation token %r", token)
    return AnnotationTokens(day=day, weekday=weekday, time_of_day=time_of_day, repeater=repeater)


def decode_schedule(content: str) -> Optional[ScheduleInfo]:
    """Decode the scheduling annotation of a block.

    Returns None when no annotation line matches the grammar (not scheduled).
    A duration token on the title line is only attached to timed schedules.
    """
    found = find_annotation_line(content)
    if found is None:
        return None
    _, match = found
    tokens = tokenize_annotation_body(match["body"])
    if tokens is None:
        return None

    if tokens.time_of_day is None:
        return ScheduleInfo(
            timestamp=datetime.combine(tokens.day, time.min),
            all_day=True,
            repeater=tokens.repeater,
        )

    duration = parse_duration_token(extract_title_line(content))
    return ScheduleInfo(
        timestamp=datetime.combine(tokens.day, tokens.time_of_day),
        all_day=False,
        duration_minutes=duration,
        repeater=tokens.repeater,
    )


def format_schedule_body(timestamp: datetime, all_day: bool, repeater: Optional[str] = None) -> str:
    """Render the bracket body: date, weekday, optional time, optional repeat token."""
    parts = [timestamp.strftime("%Y-%m-%d"), WEEKDAY_ABBREVIATIONS[timestamp.weekday()]]
    if not all_day:
        parts.append(timestamp.strftime("%H:%M"))
    if repeater:
        parts.append(repeater)
    return " ".join(parts)


def encode_schedule_line(
    timestamp: datetime, all_day: bool, repeater: Optional[str] = None
) -> str:
    """Render the annotation line for a timestamp."""
    return f"{SCHEDULED_KEYWORD}: <{format_schedule_body(timestamp, all_day, repeater)}>"


def extract_recurrence_suffix(content: str) -> Optional[str]:
    """Return the repeat token of the annotation line, exactly as written."""
    found = find_annotation_line(content)
    if found is None:
        return None
    tokens = tokenize_annotation_body(found[1]["body"])
    return tokens.repeater if tokens else None


def replace_schedule_line(content: str, timestamp: datetime, all_day: bool) -> str:
    """Rewrite (or append) the annotation line, carrying the repeat token over verbatim.

    Text after the closing bracket on the old line is preserved.
    """
    lines = (content or "").split("\n")
    found = find_annotation_line(content)
    repeater = extract_recurrence_suffix(content)
    new_line = encode_schedule_line(timestamp, all_day, repeater)
    if found is None:
        if lines == [""]:
            return new_line
        return "\n".join([*lines, new_line])

    index, match = found
    old_line = lines[index]
    indent = old_line[: len(old_line) - len(old_line.lstrip())]
    lines[index] = indent + new_line + old_line[match.end():]
    return "\n".join(lines)


def remove_schedule_line(content: str) -> str:
    """Drop the scheduling annotation from a block (other lines untouched)."""
    lines = (content or "").split("\n")
    found = find_annotation_line(content)
    if found is None:
        return content
    index, match = found
    rest = lines[index][match.end():].strip()
    if rest:
        # Another annotation (e.g. a deadline) shares the line; keep it
        lines[index] = rest
    else:
        del lines[index]
    return "\n".join(lines)
