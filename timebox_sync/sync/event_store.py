"""Event store: the single place that produces the published CalendarEvent list.

Each refresh cycle queries the text store, decodes scheduled blocks, reconciles
them with the optimistic ledger, merges external feed occurrences when they are
visible and publishes the result to subscribers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any, Optional

from ..core.async_utils import Debouncer
from ..core.config_manager import get_config_value
from ..feeds.feed_cache import FeedCache, FeedCollector, feed_cache_key, normalize_feed_urls
from ..models import (
    TASK_MARKER_VALUES,
    CalendarEvent,
    EventProvenance,
    ScheduleInfo,
    ScheduledRecord,
    StoreRecord,
    TaskMarker,
    colors_for_marker,
)
from ..schedule.annotation import decode_schedule
from ..schedule.titles import collapse_hierarchical_title, display_title
from ..store.protocol import TextStore
from .ledger import OptimisticLedger, ReconcileOutcome

logger = logging.getLogger(__name__)

EventsCallback = Callable[[list[CalendarEvent]], None]


def coarse_schedule(raw: Any) -> Optional[ScheduleInfo]:
    """All-day schedule from a store's coarse ``YYYYMMDD`` property, if parsable."""
    if raw is None:
        return None
    text = str(raw).strip()
    if len(text) != 8 or not text.isdigit():
        return None
    try:
        day = date(int(text[:4]), int(text[4:6]), int(text[6:]))
    except ValueError:
        return None
    return ScheduleInfo(timestamp=datetime.combine(day, datetime.min.time()), all_day=True)


def scheduled_record(record: StoreRecord) -> Optional[ScheduledRecord]:
    """Decode a store record, or None when it carries no usable schedule."""
    schedule = decode_schedule(record.content) or coarse_schedule(record.scheduled_raw)
    if schedule is None:
        return None
    return ScheduledRecord(
        id=record.id,
        title=display_title(record.content),
        marker=TaskMarker.parse(record.marker),
        schedule=schedule,
        page=record.page,
    )


def build_local_event(
    record: ScheduledRecord,
    start: datetime,
    end: Optional[datetime],
    all_day: bool,
) -> CalendarEvent:
    """Project a scheduled block into an editable calendar event."""
    return CalendarEvent(
        id=record.id,
        title=record.title,
        display_title=collapse_hierarchical_title(record.title),
        start=start,
        end=end,
        all_day=all_day,
        colors=colors_for_marker(record.marker),
        provenance=EventProvenance.LOCAL,
        editable=True,
        record_id=record.id,
        marker=record.marker,
    )


class EventStore:
    """Builds and publishes the merged event list.

    Refreshes triggered by store change notifications are debounced. While a
    drag or resize gesture is in flight every cycle is skipped outright.
    """

    def __init__(
        self,
        text_store: TextStore,
        settings: Any = None,
        feed_cache: Optional[FeedCache] = None,
        ledger: Optional[OptimisticLedger] = None,
    ) -> None:
        """Initialize the event store.

        Args:
            text_store: Outliner block store (source of truth for local events)
            settings: TimeboxSettings or any object with the same attribute names
            feed_cache: Feed cache to use (one is built from settings if None)
            ledger: Optimistic ledger to use (one is built from settings if None)
        """
        self.text_store = text_store
        self.settings = settings
        self.feed_cache = feed_cache or FeedCache(FeedCollector(settings))
        self.ledger = ledger or OptimisticLedger(
            timeout_seconds=float(get_config_value(settings, "optimistic_timeout_seconds", 15.0))
        )

        self._external_visible = bool(get_config_value(settings, "show_external_calendars", True))
        urls_text = get_config_value(settings, "external_ics_urls", "") or ""
        self._feed_urls = normalize_feed_urls(urls_text.splitlines())
        self._force_external = False

        self._events: list[CalendarEvent] = []
        self._subscribers: list[EventsCallback] = []
        self._dragging = False
        self._cycle_seq = 0
        self._published_cycle = 0
        self._unsubscribe_store: Optional[Callable[[], None]] = None

        debounce_ms = int(get_config_value(settings, "refresh_debounce_ms", 100))
        self._debouncer = Debouncer(self._debounced_refresh, debounce_ms / 1000.0)

    # -- lifecycle -------------------------------------------------------

    async def start(self) -> None:
        """Initial load, then follow store change notifications."""
        await self.refresh_now()
        if self._unsubscribe_store is None:
            self._unsubscribe_store = self.text_store.on_change(self._on_store_change)

    async def close(self) -> None:
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None
        await self._debouncer.cancel()

    # -- published state -------------------------------------------------

    @property
    def events(self) -> list[CalendarEvent]:
        return list(self._events)

    def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        return next((event for event in self._events if event.id == event_id), None)

    def subscribe(self, callback: EventsCallback) -> Callable[[], None]:
        """Receive every published list; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, events: list[CalendarEvent]) -> None:
        self._events = list(events)
        for callback in list(self._subscribers):
            try:
                callback(self.events)
            except Exception:
                logger.exception("Event subscriber failed")

    def replace_event(self, event: CalendarEvent) -> None:
        """Republish the current list with one event swapped in by id."""
        self.publish([event if existing.id == event.id else existing for existing in self._events])

    # -- gesture gate ----------------------------------------------------

    @property
    def is_dragging(self) -> bool:
        return self._dragging

    def set_dragging(self, dragging: bool) -> None:
        self._dragging = dragging

    # -- external feeds --------------------------------------------------

    @property
    def external_visible(self) -> bool:
        return self._external_visible

    @property
    def feed_urls(self) -> list[str]:
        return list(self._feed_urls)

    def set_external_visible(self, visible: bool) -> None:
        """Show or hide feed events. Reuses cached occurrences when shown again."""
        if visible == self._external_visible:
            return
        self._external_visible = visible
        self.refresh()

    def set_feed_urls(self, urls: Iterable[str]) -> None:
        """Replace the feed URL list; a different URL set forces a refetch."""
        normalized = normalize_feed_urls(urls)
        if feed_cache_key(normalized) != feed_cache_key(self._feed_urls):
            self._force_external = True
        self._feed_urls = normalized
        self.refresh()

    # -- refresh ---------------------------------------------------------

    def _on_store_change(self) -> None:
        self.refresh()

    def refresh(self, force_external: bool = False) -> None:
        """Schedule a debounced refresh cycle."""
        if force_external:
            self._force_external = True
        self._debouncer.trigger()

    async def _debounced_refresh(self) -> None:
        await self.refresh_now()

    async def refresh_now(self, force_external: bool = False) -> bool:
        """Run one refresh cycle immediately.

        Cycles may overlap while one awaits the store or the feeds. A cycle whose
        result arrives after a newer cycle has already published is dropped.

        Returns:
            True when a new list was published, False when the cycle was skipped
            (gesture in flight), superseded or failed (previous list kept)
        """
        if self._dragging:
            logger.debug("Refresh skipped: gesture in flight")
            return False

        if force_external:
            self._force_external = True
        self._cycle_seq += 1
        cycle = self._cycle_seq
        try:
            records = await self.text_store.query_scheduled(sorted(TASK_MARKER_VALUES))
            local_events = self._build_local_events(records)
            external_events = await self._build_external_events()
        except Exception:
            logger.exception("Refresh cycle failed, keeping %d published events", len(self._events))
            return False

        if self._dragging:
            logger.debug("Refresh discarded: gesture started during the cycle")
            return False
        if cycle < self._published_cycle:
            logger.debug(
                "Refresh %d discarded: cycle %d already published", cycle, self._published_cycle
            )
            return False

        self._published_cycle = cycle
        self.publish(local_events + external_events)
        logger.debug(
            "Published %d local and %d external events", len(local_events), len(external_events)
        )
        return True

    def _build_local_events(self, records: list[StoreRecord]) -> list[CalendarEvent]:
        events: list[CalendarEvent] = []
        for record in records:
            if record.marker is not None and record.marker not in TASK_MARKER_VALUES:
                continue
            scheduled = scheduled_record(record)
            if scheduled is None:
                logger.debug("Block %s has no decodable schedule", record.id)
                continue

            schedule = scheduled.schedule
            outcome, entry = self.ledger.reconcile(record.id, schedule.timestamp, schedule.all_day)
            if outcome == ReconcileOutcome.PENDING and entry is not None:
                events.append(build_local_event(scheduled, entry.start, entry.end, entry.all_day))
            else:
                events.append(
                    build_local_event(scheduled, schedule.timestamp, schedule.end, schedule.all_day)
                )

        for record_id in self.ledger.drop_expired():
            logger.debug("Ledger: dropped expired entry for missing block %s", record_id)
        return events

    async def _build_external_events(self) -> list[CalendarEvent]:
        # A pending forced refetch survives cycles that fetch nothing
        if not self._external_visible or not self._feed_urls:
            return []
        urls = list(self._feed_urls)
        force = self._force_external
        occurrences = await self.feed_cache.get_occurrences(urls, force_refresh=force)
        if force and feed_cache_key(urls) == feed_cache_key(self._feed_urls):
            self._force_external = False
        return [occurrence.to_calendar_event(index) for index, occurrence in enumerate(occurrences)]
