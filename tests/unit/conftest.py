"""Shared fixtures for timebox_sync unit tests."""

from collections.abc import AsyncIterator, Generator
from types import SimpleNamespace
from typing import Any

import pytest

from timebox_sync.core.http_client import close_all_clients
from timebox_sync.store.memory_store import InMemoryTextStore

FROZEN_NOW = "2024-01-10T12:00:00"


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used across tests.

    Mirrors the TimeboxSettings field names with deterministic values and no
    retry delay worth waiting for.
    """
    return SimpleNamespace(
        request_timeout=5,
        max_retries=1,
        retry_backoff_factor=0.0,
        feed_past_days=30,
        feed_future_days=120,
        max_occurrences_per_rule=500,
        display_timezone="UTC",
        external_ics_urls="",
        show_external_calendars=True,
        optimistic_timeout_seconds=15.0,
        refresh_debounce_ms=10,
        journal_date_format="MMM do, yyyy",
        click_action="none",
        double_click_action="goto",
    )


@pytest.fixture
def frozen_now(monkeypatch: Any) -> str:
    """Freeze the engine clock at FROZEN_NOW (UTC) via TIMEBOX_TEST_TIME."""
    monkeypatch.setenv("TIMEBOX_TEST_TIME", FROZEN_NOW)
    return FROZEN_NOW


@pytest.fixture
def memory_store() -> InMemoryTextStore:
    return InMemoryTextStore()


class RecordingNotifier:
    """Collects (text, level) notices instead of showing them."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def show_message(self, text: str, level: str = "info") -> None:
        self.messages.append((text, level))

    def levels(self) -> list[str]:
        return [level for _, level in self.messages]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure engine environment overrides do not leak between tests."""
    for name in ("TIMEBOX_TEST_TIME", "TIMEBOX_DEBUG", "TIMEBOX_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test to prevent resource leaks."""
    yield
    await close_all_clients()


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """A calendar with one timed event five days after FROZEN_NOW."""
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Timebox Test//EN
X-WR-CALNAME:Work
BEGIN:VEVENT
UID:simple-001@timebox.test
DTSTART:20240115T100000Z
DTEND:20240115T110000Z
SUMMARY:Team Meeting
END:VEVENT
END:VCALENDAR"""


@pytest.fixture
def sample_ics_weekly() -> str:
    """A weekly recurring event with no COUNT or UNTIL, started long ago."""
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Timebox Test//EN
BEGIN:VEVENT
UID:weekly-001@timebox.test
DTSTART:20200106T090000Z
DTEND:20200106T093000Z
RRULE:FREQ=WEEKLY
SUMMARY:Weekly Standup
END:VEVENT
END:VCALENDAR"""
