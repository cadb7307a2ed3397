"""Fallback drop resolution for drags whose native drop callback never fires.

Cross-view drags sometimes end without the grid reporting a drop. The resolver
remembers where the event was grabbed and, at gesture end, maps the pointer's
final screen position to a grid cell itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional, Protocol

from ..models import CalendarEvent, GridCell

logger = logging.getLogger(__name__)


class CellLocator(Protocol):
    """Renderer capability: which grid cell lies under a screen point."""

    def cell_at(self, x: float, y: float) -> Optional[GridCell]:
        """Hit-test the rendered grid.

        Args:
            x: Pointer x in screen coordinates
            y: Pointer y in screen coordinates

        Returns:
            The timed or all-day cell under the point, or None
        """
        ...


@dataclass
class DropIntent:
    """Where a dragged event should land."""

    event_id: str
    start: datetime
    end: Optional[datetime]
    all_day: bool


@dataclass
class _Gesture:
    event: CalendarEvent
    grab_offset: timedelta
    grabbed_timed: bool
    native_drop_fired: bool = False


class DragIntentResolver:
    """Tracks one drag gesture at a time and infers its drop target when needed."""

    def __init__(self, locator: CellLocator) -> None:
        self.locator = locator
        self._gesture: Optional[_Gesture] = None

    @property
    def active(self) -> bool:
        return self._gesture is not None

    def begin(self, event: CalendarEvent, x: float, y: float) -> None:
        """Start tracking a drag and compute the grab offset from the cell under the pointer."""
        cell = self.locator.cell_at(x, y)
        grabbed_timed = cell is not None and cell.is_timed and not event.all_day
        offset = cell.to_datetime() - event.start if grabbed_timed and cell else timedelta(0)
        self._gesture = _Gesture(event=event, grab_offset=offset, grabbed_timed=grabbed_timed)
        logger.debug("Drag start %s, grab offset %s", event.id, offset)

    def mark_native_drop(self) -> None:
        """The grid delivered its own drop callback for the current gesture."""
        if self._gesture is not None:
            self._gesture.native_drop_fired = True

    async def end(self, x: float, y: float) -> Optional[DropIntent]:
        """Finish the gesture; returns the inferred drop or None.

        Waits one loop tick first so a native drop callback queued behind the
        drag-stop notification can mark itself.
        """
        await asyncio.sleep(0)
        gesture, self._gesture = self._gesture, None
        if gesture is None:
            return None
        if gesture.native_drop_fired:
            logger.debug("Native drop handled %s", gesture.event.id)
            return None

        cell = self.locator.cell_at(x, y)
        if cell is None:
            logger.debug("No grid cell under pointer, abandoning drag of %s", gesture.event.id)
            return None

        return self.resolve(gesture, cell)

    @staticmethod
    def resolve(gesture: _Gesture, cell: GridCell) -> DropIntent:
        event = gesture.event
        if cell.is_timed:
            start = cell.to_datetime()
            if gesture.grabbed_timed:
                start -= gesture.grab_offset
            all_day = False
        else:
            start = datetime.combine(cell.day, time.min)
            all_day = True

        end = None
        if not all_day and event.end is not None and event.end > event.start:
            end = start + (event.end - event.start)

        logger.debug("Inferred drop for %s at %s (all_day=%s)", event.id, start, all_day)
        return DropIntent(event_id=event.id, start=start, end=end, all_day=all_day)
