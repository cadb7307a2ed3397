"""Unit tests for the EventStore refresh cycle and reconciliation."""

import asyncio
from datetime import datetime

import pytest

from timebox_sync.models import DONE_COLORS, ExternalOccurrence, StoreRecord, TaskMarker
from timebox_sync.store.protocol import TextStoreError
from timebox_sync.sync.event_store import EventStore, coarse_schedule, scheduled_record
from timebox_sync.sync.ledger import OptimisticLedger

pytestmark = [pytest.mark.unit, pytest.mark.fast]

FEED_URL = "https://calendar.example.com/team.ics"


class FakeFeedCache:
    """Stands in for FeedCache and records every lookup."""

    def __init__(self, occurrences=None):
        self.occurrences = occurrences or []
        self.calls: list[tuple[list[str], bool]] = []

    async def get_occurrences(self, urls, force_refresh=False):
        self.calls.append((list(urls), force_refresh))
        return self.occurrences


@pytest.fixture
def feed_cache():
    return FakeFeedCache(
        [ExternalOccurrence(uid="ext-1", title="Standup", start=datetime(2024, 1, 11, 9, 0))]
    )


@pytest.fixture
def ledger(fake_clock):
    return OptimisticLedger(timeout_seconds=15.0, clock=fake_clock)


@pytest.fixture
async def event_store(memory_store, simple_settings, feed_cache, ledger):
    simple_settings.external_ics_urls = FEED_URL
    store = EventStore(memory_store, simple_settings, feed_cache=feed_cache, ledger=ledger)
    yield store
    await store.close()


def test_coarse_schedule_when_yyyymmdd_then_all_day():
    """The store's coarse property decodes to an all-day schedule."""
    info = coarse_schedule(20240110)
    assert info.timestamp == datetime(2024, 1, 10)
    assert info.all_day is True
    assert coarse_schedule("2024-01-10") is None
    assert coarse_schedule(None) is None


def test_scheduled_record_when_annotated_then_decoded_projection():
    """Store records become decoded scheduled records; unscheduled ones do not."""
    record = StoreRecord(
        id="r1",
        content="DOING write [d:30m]\nSCHEDULED: <2024-01-10 Wed 09:00>",
        marker="DOING",
        scheduled_raw=20240110,
        page="jan 10th, 2024",
    )

    scheduled = scheduled_record(record)

    assert scheduled.title == "write"
    assert scheduled.marker == TaskMarker.DOING
    assert scheduled.schedule.timestamp == datetime(2024, 1, 10, 9, 0)
    assert scheduled.schedule.duration_minutes == 30
    assert scheduled.page == "jan 10th, 2024"
    assert scheduled_record(StoreRecord(id="r2", content="TODO loose")) is None


@pytest.mark.asyncio
async def test_refresh_when_scheduled_blocks_then_local_events_published(event_store, memory_store):
    """Scheduled task blocks become editable local events with marker colors."""
    memory_store.add_record("TODO buy milk\nSCHEDULED: <2024-01-10 Wed>", record_id="milk")
    memory_store.add_record(
        "DONE review [[work/q1/plan]] [d:1h30m]\nSCHEDULED: <2024-01-10 Wed 09:00>",
        record_id="review",
    )
    memory_store.add_record("TODO unscheduled", record_id="loose")

    assert await event_store.refresh_now() is True
    local = {e.id: e for e in event_store.events if not e.is_external}

    assert set(local) == {"milk", "review"}
    assert local["milk"].all_day is True
    assert local["milk"].title == "buy milk"
    assert local["review"].display_title == "review [[/plan]]"
    assert local["review"].end == datetime(2024, 1, 10, 10, 30)
    assert local["review"].colors == DONE_COLORS
    assert local["review"].editable is True


@pytest.mark.asyncio
async def test_refresh_when_foreign_marker_then_excluded(event_store, memory_store):
    """Blocks whose marker is not a known task state never appear."""
    memory_store.add_record("IN-PROGRESS x\nSCHEDULED: <2024-01-10 Wed>", record_id="foreign")
    memory_store.add_record("Plain note\nSCHEDULED: <2024-01-10 Wed>", record_id="plain")

    await event_store.refresh_now()

    assert [e.id for e in event_store.events if not e.is_external] == ["plain"]


@pytest.mark.asyncio
async def test_refresh_when_annotation_malformed_then_coarse_date_used(event_store, memory_store):
    """A bracket body the codec rejects falls back to the store's date property."""
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10Wed>", record_id="odd")

    await event_store.refresh_now()
    event = event_store.get_event("odd")

    assert event is not None
    assert event.all_day is True
    assert event.start == datetime(2024, 1, 10)


@pytest.mark.asyncio
async def test_refresh_when_external_visible_then_read_only_events_merged(event_store, feed_cache):
    """Feed occurrences are tagged external and cannot be edited."""
    await event_store.refresh_now()
    external = [e for e in event_store.events if e.is_external]

    assert len(external) == 1
    assert external[0].editable is False
    assert external[0].record_id is None
    assert feed_cache.calls == [([FEED_URL], False)]


@pytest.mark.asyncio
async def test_visibility_toggle_when_urls_unchanged_then_no_forced_refetch(event_store, feed_cache):
    """Hiding and showing feeds reuses the cache."""
    await event_store.refresh_now()
    event_store.set_external_visible(False)
    await event_store.refresh_now()
    assert not any(e.is_external for e in event_store.events)

    event_store.set_external_visible(True)
    await event_store.refresh_now()

    assert any(e.is_external for e in event_store.events)
    assert [force for _, force in feed_cache.calls] == [False, False]


@pytest.mark.asyncio
async def test_set_feed_urls_when_list_changes_then_refetch_forced_once(event_store, feed_cache):
    """A changed URL list forces exactly one refetch."""
    await event_store.refresh_now()
    event_store.set_feed_urls([FEED_URL, "https://other.example.com/x.ics"])
    await event_store.refresh_now()
    await event_store.refresh_now()

    assert [force for _, force in feed_cache.calls] == [False, True, False]
    assert feed_cache.calls[1][0] == [FEED_URL, "https://other.example.com/x.ics"]


@pytest.mark.asyncio
async def test_refresh_when_dragging_then_cycle_skipped(event_store, memory_store):
    """No query and no publish happen while a gesture is in flight."""
    published = []
    event_store.subscribe(published.append)
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed>", record_id="x")
    event_store.set_dragging(True)

    assert await event_store.refresh_now() is False
    assert published == []
    assert event_store.events == []


@pytest.mark.asyncio
async def test_refresh_when_pending_entry_and_store_behind_then_optimistic_value(
    event_store, memory_store, ledger
):
    """A young pending entry masks the stale store value."""
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed 09:00>", record_id="x")
    ledger.record("x", datetime(2024, 1, 11, 14, 0), datetime(2024, 1, 11, 15, 0), False)

    await event_store.refresh_now()
    event = event_store.get_event("x")

    assert event.start == datetime(2024, 1, 11, 14, 0)
    assert event.end == datetime(2024, 1, 11, 15, 0)
    assert "x" in ledger


@pytest.mark.asyncio
async def test_refresh_when_store_catches_up_then_entry_removed(event_store, memory_store, ledger):
    """A matching store read confirms and removes the pending entry."""
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed 09:00>", record_id="x")
    ledger.record("x", datetime(2024, 1, 11, 14, 0), None, False)
    await event_store.refresh_now()

    await memory_store.update_record_content("x", "TODO x\nSCHEDULED: <2024-01-11 Thu 14:00>")
    await event_store.refresh_now()

    assert "x" not in ledger
    assert event_store.get_event("x").start == datetime(2024, 1, 11, 14, 0)


@pytest.mark.asyncio
async def test_refresh_when_pending_entry_expired_then_store_value_wins(
    event_store, memory_store, ledger, fake_clock
):
    """After the timeout the published value matches the store read."""
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed 09:00>", record_id="x")
    ledger.record("x", datetime(2024, 1, 11, 14, 0), None, False)
    fake_clock.advance(16)

    await event_store.refresh_now()

    assert event_store.get_event("x").start == datetime(2024, 1, 10, 9, 0)
    assert "x" not in ledger


@pytest.mark.asyncio
async def test_refresh_when_query_fails_then_previous_list_kept(event_store, memory_store, monkeypatch):
    """A failed cycle leaves the published list untouched."""
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed>", record_id="x")
    await event_store.refresh_now()
    before = event_store.events

    async def broken_query(markers):
        raise TextStoreError("store offline")

    monkeypatch.setattr(memory_store, "query_scheduled", broken_query)

    assert await event_store.refresh_now() is False
    assert event_store.events == before


@pytest.mark.asyncio
async def test_store_changes_when_burst_then_single_debounced_refresh(event_store, memory_store):
    """Several change notifications in a row trigger one requery."""
    await event_store.start()
    queries = []
    original = memory_store.query_scheduled

    async def counting_query(markers):
        queries.append(markers)
        return await original(markers)

    memory_store.query_scheduled = counting_query
    record = memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed>", record_id="x")
    for hour in (9, 10, 11):
        await memory_store.update_record_content(
            record.id, f"TODO x\nSCHEDULED: <2024-01-10 Wed {hour}:00>"
        )

    await asyncio.sleep(0.1)

    assert len(queries) == 1
    assert event_store.get_event("x").start == datetime(2024, 1, 10, 11, 0)


@pytest.mark.asyncio
async def test_close_when_called_then_store_changes_ignored(event_store, memory_store):
    """After close() no refresh is scheduled by store changes."""
    await event_store.start()
    await event_store.close()
    published = []
    event_store.subscribe(published.append)

    await memory_store.create_page("Inbox")
    await asyncio.sleep(0.05)

    assert published == []


@pytest.mark.asyncio
async def test_subscribe_when_unsubscribed_then_not_called(event_store):
    """The unsubscribe function stops delivery."""
    published = []
    unsubscribe = event_store.subscribe(published.append)
    await event_store.refresh_now()
    unsubscribe()
    await event_store.refresh_now()

    assert len(published) == 1


def test_calendar_event_when_dumped_then_json_serializable():
    """Published events serialize with ISO datetimes."""
    occurrence = ExternalOccurrence(uid="u", title="T", start=datetime(2024, 1, 11, 9, 0))
    dumped = occurrence.to_calendar_event(0).model_dump(mode="json")

    assert dumped["start"] == "2024-01-11T09:00:00"
    assert dumped["provenance"] == "external"
    assert dumped["id"] == "ext:u:20240111T0900:0"


class GatedFeedCache(FakeFeedCache):
    """Holds the first lookup until released; later lookups answer at once."""

    def __init__(self, occurrences=None):
        super().__init__(occurrences)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def get_occurrences(self, urls, force_refresh=False):
        first = not self.calls
        result = await super().get_occurrences(urls, force_refresh)
        if first:
            self.entered.set()
            await self.release.wait()
        return result


@pytest.mark.asyncio
async def test_refresh_when_older_cycle_finishes_last_then_its_result_dropped(
    memory_store, simple_settings, ledger
):
    """A cycle that read the store before a move cannot overwrite the newer list."""
    simple_settings.external_ics_urls = FEED_URL
    feed_cache = GatedFeedCache()
    store = EventStore(memory_store, simple_settings, feed_cache=feed_cache, ledger=ledger)
    memory_store.add_record("TODO x\nSCHEDULED: <2024-01-10 Wed 09:00>", record_id="x")

    older = asyncio.create_task(store.refresh_now())
    await feed_cache.entered.wait()

    ledger.record("x", datetime(2024, 1, 10, 14, 0), None, False)
    await memory_store.update_record_content("x", "TODO x\nSCHEDULED: <2024-01-10 Wed 14:00>")
    assert await store.refresh_now() is True
    assert store.get_event("x").start == datetime(2024, 1, 10, 14, 0)
    assert "x" not in ledger

    feed_cache.release.set()
    assert await older is False
    assert store.get_event("x").start == datetime(2024, 1, 10, 14, 0)
    await store.close()


@pytest.mark.asyncio
async def test_set_feed_urls_when_hidden_then_refetch_forced_once_shown(event_store, feed_cache):
    """URL edits made while feeds are hidden still force a refetch on show."""
    other = "https://other.example.com/x.ics"
    await event_store.refresh_now()
    event_store.set_external_visible(False)
    await event_store.refresh_now()

    event_store.set_feed_urls([other])
    await event_store.refresh_now()
    event_store.set_feed_urls([FEED_URL])
    await event_store.refresh_now()
    assert feed_cache.calls == [([FEED_URL], False)]

    event_store.set_external_visible(True)
    await event_store.refresh_now()
    await event_store.refresh_now()

    assert feed_cache.calls == [([FEED_URL], False), ([FEED_URL], True), ([FEED_URL], False)]
