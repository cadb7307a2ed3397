"""RRULE expansion for external feed events."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any, Optional

from dateutil.rrule import rrule, rruleset, rrulestr

from ..core.timezone_utils import get_zone, to_wall_clock

logger = logging.getLogger(__name__)

_UNTIL_UTC_RE = re.compile(r"(UNTIL=\d{8}(?:T\d{6})?)Z", re.IGNORECASE)
_UNTIL_DATE_ONLY_RE = re.compile(r"(UNTIL=\d{8})(?=;|$)", re.IGNORECASE)


class RRuleExpansionError(Exception):
    """Base exception for RRULE expansion errors."""


@dataclass
class RRuleExpanderConfig:
    """Configuration for RRULE expansion."""

    max_occurrences_per_rule: int = 500
    display_timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        return cls(
            max_occurrences_per_rule=int(getattr(settings, "max_occurrences_per_rule", 500)),
            display_timezone=getattr(settings, "display_timezone", "UTC") or "UTC",
        )


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _exclusion_key(value: date | datetime) -> tuple:
    """Comparable key for EXDATE / RECURRENCE-ID matching."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return ("utc", value.astimezone(UTC).replace(tzinfo=None))
        return ("floating", value)
    return ("date", value)


def normalize_rrule_string(rrule_string: str, dtstart: datetime) -> str:
    """Make UNTIL agree with DTSTART's awareness, which dateutil requires."""
    if dtstart.tzinfo is None:
        return _UNTIL_UTC_RE.sub(r"\1", rrule_string)
    return _UNTIL_DATE_ONLY_RE.sub(r"\1T235959Z", rrule_string)


class RRuleExpander:
    """Expands one recurring master into its in-window start times."""

    def __init__(self, settings: Any = None) -> None:
        config = RRuleExpanderConfig.from_settings(settings)
        self.max_occurrences = max(1, config.max_occurrences_per_rule)
        self.display_timezone = config.display_timezone

    def build_rule(self, rrule_string: str, dtstart: date | datetime) -> rrule | rruleset:
        """Parse an RRULE string anchored at dtstart.

        Raises:
            RRuleExpansionError: If the rule cannot be parsed
        """
        start = _as_datetime(dtstart)
        try:
            return rrulestr(normalize_rrule_string(rrule_string, start), dtstart=start)
        except (ValueError, TypeError) as e:
            raise RRuleExpansionError(f"Invalid RRULE {rrule_string!r}: {e}") from e

    def _window_anchor(self, window_start: datetime, dtstart: datetime) -> datetime:
        """Express the wall-clock window start in the rule's own clock."""
        if dtstart.tzinfo is None:
            return window_start
        return window_start.replace(tzinfo=get_zone(self.display_timezone))

    def expand(
        self,
        rrule_string: str,
        dtstart: date | datetime,
        window_start: datetime,
        window_end: datetime,
        exclusions: Optional[Iterable[date | datetime]] = None,
    ) -> Iterator[datetime]:
        """Yield occurrence starts (naive wall clock) inside [window_start, window_end].

        Iteration starts at the window's past edge, stops at the first start beyond
        the future edge and never visits more than ``max_occurrences`` starts.

        Raises:
            RRuleExpansionError: If the rule is invalid or iteration fails
        """
        all_day = not isinstance(dtstart, datetime)
        start = _as_datetime(dtstart)
        rule = self.build_rule(rrule_string, dtstart)
        excluded = {_exclusion_key(value) for value in (exclusions or [])}

        anchor = self._window_anchor(window_start, start)
        visited = 0
        try:
            for occurrence in rule.xafter(anchor, count=self.max_occurrences, inc=True):
                visited += 1
                wall = to_wall_clock(occurrence, self.display_timezone)
                if wall > window_end:
                    break
                if wall < window_start:
                    continue
                if excluded and self._is_excluded(occurrence, all_day, excluded):
                    continue
                yield wall
        except (ValueError, TypeError, OverflowError) as e:
            raise RRuleExpansionError(f"RRULE iteration failed for {rrule_string!r}: {e}") from e

        if visited >= self.max_occurrences:
            logger.debug(
                "RRULE %r hit the %d occurrence cap", rrule_string, self.max_occurrences
            )

    @staticmethod
    def _is_excluded(occurrence: datetime, all_day: bool, excluded: set[tuple]) -> bool:
        if all_day:
            return ("date", occurrence.date()) in excluded or ("floating", occurrence) in excluded
        return _exclusion_key(occurrence) in excluded or ("date", occurrence.date()) in excluded
