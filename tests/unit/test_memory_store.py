"""Unit tests for the in-memory text store."""

import pytest

from timebox_sync.models import TASK_MARKER_VALUES
from timebox_sync.store.memory_store import InMemoryTextStore, derive_marker, derive_scheduled
from timebox_sync.store.protocol import RecordNotFoundError, StoreMutationError

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_derive_marker_when_known_word_then_returned():
    """Markers come from the first word of the title line."""
    assert derive_marker("DOING write\nSCHEDULED: <2024-01-10 Wed>") == "DOING"
    assert derive_marker("SCHEDULED: <2024-01-10 Wed>\nWAIT on review") == "WAIT"
    assert derive_marker("Just a note") is None


def test_derive_scheduled_when_annotation_then_yyyymmdd():
    """The coarse property is the annotation's date as an integer."""
    assert derive_scheduled("TODO x\nSCHEDULED: <2024-01-10 Wed 09:00>") == 20240110
    assert derive_scheduled("TODO x") is None


@pytest.mark.asyncio
async def test_query_scheduled_when_markers_given_then_filtered(memory_store):
    """Only scheduled blocks with no marker or an allowed marker are returned."""
    memory_store.add_record("TODO a\nSCHEDULED: <2024-01-10 Wed>", record_id="a")
    memory_store.add_record("WAIT b\nSCHEDULED: <2024-01-10 Wed>", record_id="b")
    memory_store.add_record("note c\nSCHEDULED: <2024-01-10 Wed>", record_id="c")
    memory_store.add_record("TODO d", record_id="d")

    records = await memory_store.query_scheduled(TASK_MARKER_VALUES)

    assert [r.id for r in records] == ["a", "c"]


@pytest.mark.asyncio
async def test_update_when_record_exists_then_properties_rederived_and_notified(memory_store):
    """Rewrites recompute marker and schedule and fire change callbacks."""
    changes = []
    memory_store.on_change(lambda: changes.append(True))
    memory_store.add_record("TODO a", record_id="a")

    await memory_store.update_record_content("a", "DONE a\nSCHEDULED: <2024-02-01 Thu>")
    record = await memory_store.get_record("a")

    assert record.marker == "DONE"
    assert record.scheduled_raw == 20240201
    assert changes == [True]


@pytest.mark.asyncio
async def test_update_when_record_missing_then_not_found(memory_store):
    with pytest.raises(RecordNotFoundError):
        await memory_store.update_record_content("nope", "x")


@pytest.mark.asyncio
async def test_append_when_page_missing_then_mutation_error(memory_store):
    """Appending requires an existing page."""
    with pytest.raises(StoreMutationError):
        await memory_store.append_record("Nowhere", "TODO x")


@pytest.mark.asyncio
async def test_pages_when_created_then_case_insensitive_lookup():
    """Page names resolve case-insensitively and keep their original spelling."""
    store = InMemoryTextStore()
    assert await store.get_page("Jan 10th, 2024") is None

    created = await store.create_page("Jan 10th, 2024")
    record = await store.append_record("jan 10th, 2024", "TODO x")

    assert created == "Jan 10th, 2024"
    assert await store.get_page("JAN 10TH, 2024") == "Jan 10th, 2024"
    assert record.page == "Jan 10th, 2024"


@pytest.mark.asyncio
async def test_on_change_when_unsubscribed_then_silent(memory_store):
    changes = []
    unsubscribe = memory_store.on_change(lambda: changes.append(True))
    unsubscribe()
    await memory_store.create_page("Inbox")
    assert changes == []
