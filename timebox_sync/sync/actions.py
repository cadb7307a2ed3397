"""User-facing calendar mutations.

Translates grid intents (select, click, drag, drop, resize, inline edit) into
text-store writes. Moves and resizes are optimistic: the ledger entry and the
published list change first, the block is rewritten afterwards, and a failed
write reverts the published event and notifies the user.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from ..core.config_manager import ClickAction, get_config_value
from ..models import CalendarEvent
from ..schedule.annotation import encode_schedule_line, remove_schedule_line, replace_schedule_line
from ..schedule.duration import format_duration_token
from ..schedule.titles import (
    extract_title_line,
    format_journal_page_name,
    replace_title_line,
    update_duration_in_content,
)
from ..store.protocol import Notifier, RecordNotFoundError, TextStore, TextStoreError
from .drag_resolver import DragIntentResolver
from .event_store import EventStore

logger = logging.getLogger(__name__)

DEFAULT_NEW_TASK_TITLE = "New task"
DEFAULT_JOURNAL_FORMAT = "MMM do, yyyy"
READ_ONLY_MESSAGE = "External calendar events are read-only"


def _duration_minutes(start: datetime, end: Optional[datetime]) -> Optional[int]:
    if end is None:
        return None
    minutes = int((end - start).total_seconds() // 60)
    return minutes if minutes > 0 else None


class CalendarActions:
    """Applies grid interactions to the text store through the event store."""

    def __init__(
        self,
        event_store: EventStore,
        notifier: Notifier,
        resolver: Optional[DragIntentResolver] = None,
        settings: Any = None,
    ) -> None:
        """Initialize calendar actions.

        Args:
            event_store: Event store owning the published list and the ledger
            notifier: Sink for user-visible notices
            resolver: Drop fallback for drags without a native drop callback
            settings: Settings for journal format and click actions (defaults to the
                event store's settings)
        """
        self.event_store = event_store
        self.notifier = notifier
        self.resolver = resolver
        self.settings = settings if settings is not None else event_store.settings

    @property
    def text_store(self) -> TextStore:
        return self.event_store.text_store

    # -- gesture gate ----------------------------------------------------

    def begin_gesture(self) -> None:
        self.event_store.set_dragging(True)

    def end_gesture(self) -> None:
        if not self.event_store.is_dragging:
            return
        self.event_store.set_dragging(False)
        self.event_store.refresh()

    # -- creation --------------------------------------------------------

    async def create_from_selection(
        self,
        start: datetime,
        end: Optional[datetime],
        all_day: bool,
        title: str = DEFAULT_NEW_TASK_TITLE,
    ) -> Optional[str]:
        """Append a scheduled TODO block to the journal page of ``start``.

        Returns:
            The new block id, or None when the store rejected the write
        """
        title_line = f"TODO {title.strip() or DEFAULT_NEW_TASK_TITLE}"
        minutes = None if all_day else _duration_minutes(start, end)
        if minutes:
            title_line = f"{title_line} {format_duration_token(minutes)}"
        content = f"{title_line}\n{encode_schedule_line(start, all_day)}"

        page_name = self.journal_page_name(start.date())
        try:
            page = await self.text_store.get_page(page_name)
            if page is None:
                page = await self.text_store.create_page(page_name)
            record = await self.text_store.append_record(page, content)
        except TextStoreError as e:
            logger.error("Failed to create task on %s: %s", page_name, e)
            self.notifier.show_message(f"Could not create task: {e}", "error")
            return None

        logger.info("Created task %s on %s", record.id, page_name)
        self.event_store.refresh()
        return record.id

    def journal_page_name(self, day: date) -> str:
        fmt = get_config_value(self.settings, "journal_date_format", DEFAULT_JOURNAL_FORMAT)
        return format_journal_page_name(day, fmt or DEFAULT_JOURNAL_FORMAT)

    # -- move / resize ---------------------------------------------------

    def _editable_event(self, event_id: str) -> Optional[CalendarEvent]:
        event = self.event_store.get_event(event_id)
        if event is None:
            logger.warning("Event %s is not in the published list", event_id)
            self.notifier.show_message("Event not found", "warning")
            return None
        if event.is_external or not event.editable or not event.record_id:
            self.notifier.show_message(READ_ONLY_MESSAGE, "warning")
            # Re-publishing the unchanged list makes the grid drop its local move
            self.event_store.replace_event(event)
            return None
        return event

    async def move_event(
        self, event_id: str, new_start: datetime, new_end: Optional[datetime], all_day: bool
    ) -> bool:
        """Reschedule a block after a drop. Returns True when the write succeeded."""
        event = self._editable_event(event_id)
        if event is None:
            return False
        minutes = None if all_day else _duration_minutes(new_start, new_end)
        return await self._apply_schedule(
            event, new_start, new_end if minutes else None, all_day, minutes
        )

    async def resize_event(self, event_id: str, new_end: datetime) -> bool:
        """Change a timed block's duration. All-day events cannot be resized."""
        event = self._editable_event(event_id)
        if event is None:
            return False
        if event.all_day:
            logger.debug("Ignoring resize of all-day event %s", event_id)
            self.event_store.replace_event(event)
            return False
        minutes = _duration_minutes(event.start, new_end)
        return await self._apply_schedule(
            event, event.start, new_end if minutes else None, False, minutes
        )

    async def _apply_schedule(
        self,
        event: CalendarEvent,
        start: datetime,
        end: Optional[datetime],
        all_day: bool,
        minutes: Optional[int],
    ) -> bool:
        record_id = event.record_id or event.id
        ledger = self.event_store.ledger
        ledger.record(record_id, start, end, all_day)
        self.event_store.replace_event(
            event.model_copy(update={"start": start, "end": end, "all_day": all_day})
        )

        try:
            record = await self.text_store.get_record(record_id)
            if record is None:
                raise RecordNotFoundError(f"Block {record_id} not found")
            content = replace_schedule_line(record.content, start, all_day)
            content = update_duration_in_content(content, minutes)
            await self.text_store.update_record_content(record_id, content)
        except TextStoreError as e:
            logger.error("Failed to reschedule %s: %s", record_id, e)
            ledger.discard(record_id)
            self.event_store.replace_event(event)
            self.notifier.show_message(f"Could not update event: {e}", "error")
            return False

        logger.info(
            "Rescheduled %s to %s (all_day=%s, minutes=%s)", record_id, start, all_day, minutes
        )
        self.event_store.refresh()
        return True

    # -- inline edit / clear ---------------------------------------------

    async def title_for_edit(self, event_id: str) -> Optional[str]:
        """Raw title line of a block, as shown in the inline editor."""
        event = self.event_store.get_event(event_id)
        if event is None or event.is_external or not event.record_id:
            return None
        record = await self.text_store.get_record(event.record_id)
        return extract_title_line(record.content) if record else None

    async def edit_title(self, event_id: str, new_title: str) -> bool:
        """Replace the block's title line verbatim; blank input is ignored."""
        if not new_title.strip():
            return False
        event = self._editable_event(event_id)
        if event is None:
            return False
        try:
            record = await self.text_store.get_record(event.record_id or event.id)
            if record is None:
                return False
            await self.text_store.update_record_content(
                record.id, replace_title_line(record.content, new_title)
            )
        except TextStoreError as e:
            logger.error("Failed to edit %s: %s", event_id, e)
            self.notifier.show_message(f"Error updating event: {e}", "error")
            return False

        self.notifier.show_message("Event updated", "success")
        self.event_store.refresh()
        return True

    async def clear_schedule(self, event_id: str) -> bool:
        """Unschedule a block: drop its annotation line and duration token."""
        event = self._editable_event(event_id)
        if event is None:
            return False
        record_id = event.record_id or event.id
        try:
            record = await self.text_store.get_record(record_id)
            if record is None:
                raise RecordNotFoundError(f"Block {record_id} not found")
            content = update_duration_in_content(remove_schedule_line(record.content), None)
            await self.text_store.update_record_content(record_id, content)
        except TextStoreError as e:
            logger.error("Failed to clear schedule of %s: %s", record_id, e)
            self.notifier.show_message(f"Could not clear schedule: {e}", "error")
            return False

        self.event_store.ledger.discard(record_id)
        self.event_store.publish([ev for ev in self.event_store.events if ev.id != event_id])
        self.notifier.show_message("Schedule cleared", "success")
        self.event_store.refresh()
        return True

    # -- grid intents ----------------------------------------------------

    def click_action(self, event_id: str, double: bool = False) -> ClickAction:
        """Configured action for a (double) click; external events only support none."""
        event = self.event_store.get_event(event_id)
        if event is None or event.is_external:
            return ClickAction.NONE
        key = "double_click_action" if double else "click_action"
        default = ClickAction.GOTO if double else ClickAction.NONE
        raw = get_config_value(self.settings, key, default)
        try:
            return ClickAction(raw)
        except ValueError:
            return default

    def on_drag_start(self, event_id: str, x: float, y: float) -> None:
        self.begin_gesture()
        event = self.event_store.get_event(event_id)
        if self.resolver is not None and event is not None:
            self.resolver.begin(event, x, y)

    async def on_event_drop(
        self, event_id: str, new_start: datetime, new_end: Optional[datetime], all_day: bool
    ) -> bool:
        """Native drop callback from the grid."""
        if self.resolver is not None:
            self.resolver.mark_native_drop()
        try:
            return await self.move_event(event_id, new_start, new_end, all_day)
        finally:
            self.end_gesture()

    async def on_drag_stop(self, x: float, y: float) -> bool:
        """Drag finished; falls back to pointer hit-testing when no native drop arrived."""
        intent = await self.resolver.end(x, y) if self.resolver is not None else None
        try:
            if intent is None:
                return False
            return await self.move_event(intent.event_id, intent.start, intent.end, intent.all_day)
        finally:
            self.end_gesture()

    def on_resize_start(self) -> None:
        self.begin_gesture()

    async def on_event_resize(self, event_id: str, new_end: datetime) -> bool:
        try:
            return await self.resize_event(event_id, new_end)
        finally:
            self.end_gesture()
