"""iCalendar feed parser: turns one document into a bounded list of occurrences."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

from icalendar import Calendar

from ..core.timezone_utils import now_local, start_of_day, to_wall_clock
from ..models import ExternalOccurrence, FeedParseResult
from .rrule_expander import RRuleExpander, RRuleExpansionError

logger = logging.getLogger(__name__)

DEFAULT_PAST_DAYS = 30
DEFAULT_FUTURE_DAYS = 120

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class FeedParseError(Exception):
    """Raised when a document is not an iCalendar calendar at all."""


def unfold_lines(text: str) -> str:
    """Join folded content lines.

    A physical line beginning with a space or tab continues the previous logical
    line; the single leading whitespace character is dropped.
    """
    logical: list[str] = []
    for line in _LINE_BREAK_RE.split(text or ""):
        if line[:1] in (" ", "\t") and logical:
            logical[-1] += line[1:]
        else:
            logical.append(line)
    return "\n".join(logical)


def _property_text(component: Any, name: str) -> str:
    value = component.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        value = value[0] if value else ""
    if hasattr(value, "to_ical"):
        raw = value.to_ical()
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
    return str(value)


def _decoded_value(component: Any, name: str) -> Any:
    """Decoded property value or None when missing or broken."""
    if name not in component:
        return None
    try:
        return component.decoded(name)
    except (KeyError, ValueError, TypeError):
        return None


def _collect_dates(component: Any, name: str) -> list[date | datetime]:
    """All date/datetime values of a multi-valued property like EXDATE."""
    prop = component.get(name)
    if prop is None:
        return []
    props = prop if isinstance(prop, list) else [prop]
    values: list[date | datetime] = []
    for item in props:
        dts = getattr(item, "dts", None)
        if dts is None:
            dt = getattr(item, "dt", None)
            if isinstance(dt, (date, datetime)):
                values.append(dt)
            continue
        values.extend(v.dt for v in dts if isinstance(getattr(v, "dt", None), (date, datetime)))
    return values


class FeedParser:
    """Parses iCalendar text into ExternalOccurrence objects inside a time window."""

    def __init__(self, settings: Any = None) -> None:
        """Initialize feed parser.

        Args:
            settings: Object providing feed_past_days, feed_future_days,
                max_occurrences_per_rule and display_timezone (defaults apply)
        """
        self.past_days = int(getattr(settings, "feed_past_days", DEFAULT_PAST_DAYS))
        self.future_days = int(getattr(settings, "feed_future_days", DEFAULT_FUTURE_DAYS))
        self.display_timezone = getattr(settings, "display_timezone", "UTC") or "UTC"
        self.expander = RRuleExpander(settings)

    def window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """The (past edge, future edge) wall-clock window around now."""
        current = now or now_local(self.display_timezone)
        return current - timedelta(days=self.past_days), current + timedelta(days=self.future_days)

    def parse(
        self,
        ics_content: str,
        source_url: str = "",
        now: Optional[datetime] = None,
    ) -> FeedParseResult:
        """Parse one document. Never raises; malformed events are skipped.

        Args:
            ics_content: Raw iCalendar text
            source_url: Feed URL recorded on every occurrence
            now: Reference time for the window (defaults to the engine clock)
        """
        if not ics_content or not ics_content.strip():
            logger.debug("Empty feed document from %s", source_url or "<unknown>")
            return FeedParseResult(success=True, source_url=source_url)

        try:
            calendar = self._load_calendar(ics_content)
        except FeedParseError as e:
            logger.warning("Could not parse feed %s: %s", source_url or "<unknown>", e)
            return FeedParseResult(success=False, source_url=source_url, error_message=str(e))

        window_start, window_end = self.window(now)
        components = list(calendar.walk("VEVENT"))
        overridden = self._collect_overrides(components)

        result = FeedParseResult(
            success=True,
            source_url=source_url,
            calendar_name=_property_text(calendar, "X-WR-CALNAME") or None,
            total_components=len(components),
        )

        for component in components:
            try:
                produced = self._parse_component(
                    component, source_url, window_start, window_end, overridden
                )
            except Exception as e:
                uid = _property_text(component, "UID") or "<no-uid>"
                logger.warning("Skipping malformed event %s in %s: %s", uid, source_url, e)
                result.warnings.append(f"{uid}: {e}")
                result.skipped_count += 1
                continue
            if produced is None:
                result.skipped_count += 1
                continue
            if component.get("RRULE") is not None:
                result.recurring_event_count += 1
            result.occurrences.extend(produced)

        logger.debug(
            "Parsed feed %s: components=%d, occurrences=%d, recurring=%d, skipped=%d",
            source_url or "<unknown>",
            result.total_components,
            len(result.occurrences),
            result.recurring_event_count,
            result.skipped_count,
        )
        return result

    def _load_calendar(self, ics_content: str) -> Calendar:
        text = unfold_lines(ics_content)
        if "BEGIN:VCALENDAR" not in text.upper():
            raise FeedParseError("document has no VCALENDAR block")
        try:
            return Calendar.from_ical(text)
        except (ValueError, IndexError, KeyError) as e:
            raise FeedParseError(str(e)) from e

    @staticmethod
    def _collect_overrides(components: list[Any]) -> dict[str, list[date | datetime]]:
        """RECURRENCE-ID values per UID; those slots are replaced by their override event."""
        overrides: dict[str, list[date | datetime]] = {}
        for component in components:
            recurrence_id = _decoded_value(component, "RECURRENCE-ID")
            if isinstance(recurrence_id, (date, datetime)):
                overrides.setdefault(_property_text(component, "UID"), []).append(recurrence_id)
        return overrides

    def _parse_component(
        self,
        component: Any,
        source_url: str,
        window_start: datetime,
        window_end: datetime,
        overridden: dict[str, list[date | datetime]],
    ) -> Optional[list[ExternalOccurrence]]:
        """Occurrences for one VEVENT, or None when the block is skipped."""
        if _property_text(component, "STATUS").upper() == "CANCELLED":
            return None

        dtstart = _decoded_value(component, "DTSTART")
        if not isinstance(dtstart, (date, datetime)):
            return None

        all_day = not isinstance(dtstart, datetime)
        duration = self._event_duration(component, dtstart)
        uid = _property_text(component, "UID")
        title = _property_text(component, "SUMMARY") or "Untitled"

        def build(start: datetime) -> ExternalOccurrence:
            return ExternalOccurrence(
                uid=uid,
                title=title,
                start=start,
                end=start + duration if duration is not None else None,
                all_day=all_day,
                source_url=source_url,
            )

        first_start = self._wall_start(dtstart)
        rrule_text = _property_text(component, "RRULE")
        if rrule_text:
            exclusions = _collect_dates(component, "EXDATE") + overridden.get(uid, [])
            try:
                starts = list(
                    self.expander.expand(rrule_text, dtstart, window_start, window_end, exclusions)
                )
            except RRuleExpansionError as e:
                logger.warning("Recurrence expansion failed for %s, using single event: %s", uid, e)
            else:
                return [build(start) for start in starts]

        if not window_start <= first_start <= window_end:
            return []
        return [build(first_start)]

    def _wall_start(self, value: date | datetime) -> datetime:
        if isinstance(value, datetime):
            return to_wall_clock(value, self.display_timezone)
        return start_of_day(value)

    @staticmethod
    def _event_duration(component: Any, dtstart: date | datetime) -> Optional[timedelta]:
        dtend = _decoded_value(component, "DTEND")
        if isinstance(dtend, (date, datetime)) and type(dtend) is type(dtstart):
            try:
                delta = dtend - dtstart
            except TypeError:
                # Mixed floating and zoned values
                return None
            return delta if delta >= timedelta(0) else None
        declared = _decoded_value(component, "DURATION")
        if isinstance(declared, timedelta):
            return declared
        return None
