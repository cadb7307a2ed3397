"""Data models for the timebox synchronization engine."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class TaskMarker(str, Enum):
    """Task states a scheduled block may carry."""

    TODO = "TODO"
    DOING = "DOING"
    NOW = "NOW"
    LATER = "LATER"
    WAITING = "WAITING"
    DONE = "DONE"
    CANCELED = "CANCELED"

    @classmethod
    def parse(cls, raw: Any) -> Optional["TaskMarker"]:
        """Return the marker for a raw value, or None when absent or unrecognized."""
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return None


TASK_MARKER_VALUES = frozenset(m.value for m in TaskMarker)


class EventProvenance(str, Enum):
    """Where a calendar event came from."""

    LOCAL = "local"
    EXTERNAL = "external"


class EventColors(BaseModel):
    """Display color triple for one event."""

    background: str = Field(..., description="Background color")
    border: str = Field(..., description="Border color")
    text: str = Field(..., description="Text color")


DONE_COLORS = EventColors(background="#d1f4d1", border="#a3e4a3", text="#2d5f2d")
DOING_COLORS = EventColors(background="#ffe4cc", border="#ffb366", text="#994d00")
DEFAULT_COLORS = EventColors(background="#cce7ff", border="#66b3ff", text="#004d99")
EXTERNAL_COLORS = EventColors(background="#fce7ff", border="#f3c4ff", text="#5b1b73")


def colors_for_marker(marker: Optional[TaskMarker]) -> EventColors:
    """Pick the palette for a task marker."""
    if marker == TaskMarker.DONE:
        return DONE_COLORS
    if marker == TaskMarker.DOING:
        return DOING_COLORS
    return DEFAULT_COLORS


class ScheduleInfo(BaseModel):
    """Decoded scheduling fields of one block."""

    timestamp: datetime = Field(..., description="Scheduled start (naive wall clock)")
    all_day: bool = Field(default=False, description="True when no time of day is given")
    duration_minutes: Optional[int] = Field(default=None, description="Duration token value")
    repeater: Optional[str] = Field(default=None, description="Repeat token, verbatim")

    @property
    def end(self) -> Optional[datetime]:
        """Render-time end: only timed schedules with a positive duration have one."""
        if self.all_day or not self.duration_minutes or self.duration_minutes <= 0:
            return None
        return self.timestamp + timedelta(minutes=self.duration_minutes)


class StoreRecord(BaseModel):
    """A block as returned by the text-store scheduled query."""

    id: str = Field(..., description="Opaque stable block id")
    content: str = Field(default="", description="Raw block text")
    marker: Optional[str] = Field(default=None, description="Raw task marker, if any")
    scheduled_raw: Optional[Any] = Field(
        default=None, description="Coarse YYYYMMDD scheduled property exposed by the store"
    )
    page: Optional[str] = Field(default=None, description="Owning page name")


class ScheduledRecord(BaseModel):
    """A scheduled task block after decoding."""

    id: str = Field(..., description="Block id")
    title: str = Field(..., description="Title with marker prefix stripped")
    marker: Optional[TaskMarker] = Field(default=None, description="Task state")
    schedule: ScheduleInfo = Field(..., description="Decoded schedule")
    page: Optional[str] = Field(default=None, description="Owning page name")


class CalendarEvent(BaseModel):
    """Rendering-facing projection of a scheduled record or feed occurrence."""

    id: str = Field(..., description="Event id (block id for local events)")
    title: str = Field(..., description="Full title")
    display_title: str = Field(..., description="Title with namespaces collapsed")
    start: datetime = Field(..., description="Start (naive wall clock)")
    end: Optional[datetime] = Field(default=None, description="End, if known")
    all_day: bool = Field(default=False, description="All-day flag")
    colors: EventColors = Field(..., description="Display colors")
    provenance: EventProvenance = Field(..., description="local or external")
    editable: bool = Field(default=True, description="False for external events")
    record_id: Optional[str] = Field(default=None, description="Backing block id")
    marker: Optional[TaskMarker] = Field(default=None, description="Task state")
    source_label: Optional[str] = Field(default=None, description="Feed URL of external events")

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_external(self) -> bool:
        return self.provenance == EventProvenance.EXTERNAL.value

    @field_serializer("start", "end", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()


class ExternalOccurrence(BaseModel):
    """One concrete instance of an external feed event. Never editable."""

    uid: str = Field(default="", description="Feed UID of the parent event")
    title: str = Field(default="Untitled", description="Summary")
    start: datetime = Field(..., description="Start (naive wall clock)")
    end: Optional[datetime] = Field(default=None, description="End, if declared")
    all_day: bool = Field(default=False, description="Date-only occurrence")
    source_url: str = Field(default="", description="Feed the occurrence came from")

    def to_calendar_event(self, index: int) -> CalendarEvent:
        """Project into a read-only calendar event."""
        from .schedule.titles import collapse_hierarchical_title

        title = self.title or "Untitled"
        return CalendarEvent(
            id=f"ext:{self.uid or 'event'}:{self.start.strftime('%Y%m%dT%H%M')}:{index}",
            title=title,
            display_title=collapse_hierarchical_title(title),
            start=self.start,
            end=self.end,
            all_day=self.all_day,
            colors=EXTERNAL_COLORS,
            provenance=EventProvenance.EXTERNAL,
            editable=False,
            source_label=self.source_url,
        )


class GridCell(BaseModel):
    """What the renderer reports for the grid cell under a screen point."""

    day: date = Field(..., description="Cell date")
    slot: Optional[time] = Field(default=None, description="Slot time; None for all-day cells")

    @property
    def is_timed(self) -> bool:
        return self.slot is not None

    def to_datetime(self) -> datetime:
        return datetime.combine(self.day, self.slot or time.min)


class FeedParseResult(BaseModel):
    """Result of parsing and expanding one iCalendar document."""

    success: bool
    occurrences: list[ExternalOccurrence] = Field(default_factory=list)
    source_url: Optional[str] = Field(default=None, description="Source URL for tracking")
    calendar_name: Optional[str] = None

    # Parse statistics
    total_components: int = 0
    recurring_event_count: int = 0
    skipped_count: int = 0

    error_message: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
