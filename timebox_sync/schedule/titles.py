"""Title-line helpers: locating, editing and compacting block titles."""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from .duration import upsert_duration_token

ANNOTATION_PREFIXES = ("SCHEDULED:", "DEADLINE:")
UNTITLED = "Untitled"

_MARKER_PREFIX_RE = re.compile(
    r"^\s*(?:\[(?:TODO|DOING|NOW|LATER|WAITING|DONE|CANCELED)\]|"
    r"(?:TODO|DOING|NOW|LATER|WAITING|DONE|CANCELED)(?=\s|$))\s*"
)
_REFERENCE_RE = re.compile(r"\[\[([^\[\]]*/[^\[\]]+)\]\]")
_JOURNAL_TOKEN_RE = re.compile(r"yyyy|MMMM|MMM|MM|M|dd|do|d|EEEE|EEE")
_DURATION_TOKEN_RE = re.compile(r"\s*\[d:[^\]]+\]")

_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def is_annotation_line(line: str) -> bool:
    return line.lstrip().startswith(ANNOTATION_PREFIXES)


def find_title_index(lines: list[str]) -> Optional[int]:
    for index, line in enumerate(lines):
        if not is_annotation_line(line):
            return index
    return None


def extract_title_line(content: str) -> str:
    """First line that is not a SCHEDULED/DEADLINE annotation, or ""."""
    lines = (content or "").split("\n")
    index = find_title_index(lines)
    return "" if index is None else lines[index]


def strip_marker_prefix(title: str) -> str:
    """Remove a leading task marker ("TODO " or "[TODO] ") for display."""
    return _MARKER_PREFIX_RE.sub("", title or "", count=1).strip()


def display_title(content: str) -> str:
    """Title shown on the grid: marker and duration token removed."""
    title = strip_marker_prefix(_DURATION_TOKEN_RE.sub("", extract_title_line(content)))
    return title or UNTITLED


def replace_title_line(content: str, new_title: str) -> str:
    """Swap the title line, keeping annotation lines; prepend if there is none."""
    lines = (content or "").split("\n")
    index = find_title_index(lines)
    if index is None:
        return "\n".join([new_title, *lines]) if content else new_title
    lines[index] = new_title
    return "\n".join(lines)


def update_duration_in_content(content: str, minutes: Optional[int]) -> str:
    """Apply upsert_duration_token to the title line of a whole block."""
    lines = (content or "").split("\n")
    index = find_title_index(lines)
    if index is None:
        if minutes is None:
            return content
        lines.insert(0, "")
        index = 0
    lines[index] = upsert_duration_token(lines[index], minutes)
    return "\n".join(lines)


def _collapse_reference(match: re.Match) -> str:
    path = match.group(1)
    if "://" in path:
        return match.group(0)
    last_slash = path.rfind("/")
    if last_slash == -1 or last_slash == len(path) - 1:
        return match.group(0)
    leaf = path[last_slash + 1:].strip()
    return f"[[/{leaf}]]" if leaf else match.group(0)


def collapse_hierarchical_title(title: str) -> str:
    """Collapse namespaced page references: ``[[a/b/leaf]]`` -> ``[[/leaf]]``.

    URL-shaped references and references without a separator are untouched.
    """
    if not title:
        return ""
    return _REFERENCE_RE.sub(_collapse_reference, title)


def _ordinal(n: int) -> str:
    suffixes = ("th", "st", "nd", "rd")
    v = n % 100
    if 11 <= v <= 13:
        return f"{n}th"
    return f"{n}{suffixes[n % 10] if n % 10 < 4 else 'th'}"


def format_journal_page_name(day: date, fmt: str) -> str:
    """Journal page title for a date using the outliner's date-format tokens."""
    tokens = {
        "yyyy": str(day.year),
        "MMMM": _MONTH_NAMES[day.month - 1],
        "MMM": _MONTH_NAMES[day.month - 1][:3],
        "MM": f"{day.month:02d}",
        "M": str(day.month),
        "dd": f"{day.day:02d}",
        "do": _ordinal(day.day),
        "d": str(day.day),
        "EEEE": _WEEKDAY_NAMES[day.weekday()],
        "EEE": _WEEKDAY_NAMES[day.weekday()][:3],
    }
    return _JOURNAL_TOKEN_RE.sub(lambda m: tokens[m.group(0)], fmt)
