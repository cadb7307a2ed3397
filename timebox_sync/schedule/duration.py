"""Duration token on the title line: ``[d:1h30m]``, ``[d:2h]``, ``[d:45m]``."""

from __future__ import annotations

import re
from typing import Optional

_DURATION_TOKEN_RE = re.compile(r"\[d:(?P<value>[0-9hHmM]+)\]")
_STRIP_TOKEN_RE = re.compile(r"\s*\[d:[^\]]+\]")
_HOURS_RE = re.compile(r"(\d+)h", re.IGNORECASE)
_MINUTES_RE = re.compile(r"(\d+)m", re.IGNORECASE)


def parse_duration_text(text: str) -> Optional[int]:
    """Minutes for a duration like "1h30m"; a bare number counts as minutes."""
    total = 0
    hours = _HOURS_RE.search(text)
    minutes = _MINUTES_RE.search(text)
    if hours:
        total += int(hours.group(1)) * 60
    if minutes:
        total += int(minutes.group(1))
    if total == 0 and text.isdigit():
        total = int(text)
    return total if total > 0 else None


def parse_duration_token(text: str) -> Optional[int]:
    """Return the duration in minutes from the first ``[d:...]`` token in text."""
    match = _DURATION_TOKEN_RE.search(text or "")
    if not match:
        return None
    return parse_duration_text(match["value"])


def format_duration_token(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    if hours > 0 and mins > 0:
        return f"[d:{hours}h{mins}m]"
    if hours > 0:
        return f"[d:{hours}h]"
    return f"[d:{mins}m]"


def upsert_duration_token(title_line: str, minutes: Optional[int]) -> str:
    """Replace any duration token on the title line.

    Existing tokens are removed; a new one is appended when minutes is positive.
    Passing None (or a non-positive value) only strips.
    """
    title = _STRIP_TOKEN_RE.sub("", title_line or "").rstrip()
    if minutes and minutes > 0:
        token = format_duration_token(minutes)
        title = f"{title} {token}" if title else token
    return title
