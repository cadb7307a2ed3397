"""In-memory outliner store.

Mirrors how the outliner derives block properties from text: the scheduled
property comes from the SCHEDULED line and the marker from the first word of the
title line. Used by the CLI and the test-suite.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from typing import Optional

from ..models import StoreRecord
from ..schedule.titles import extract_title_line
from .protocol import ChangeCallback, RecordNotFoundError, StoreMutationError, Unsubscribe

logger = logging.getLogger(__name__)

# Every marker word the outliner itself recognizes, including ones the
# calendar does not show
OUTLINER_MARKERS = frozenset(
    {"TODO", "DOING", "NOW", "LATER", "WAITING", "WAIT", "DONE", "CANCELED", "CANCELLED",
     "IN-PROGRESS"}
)

_SCHEDULED_PROPERTY_RE = re.compile(r"SCHEDULED:\s*<(\d{4})-(\d{2})-(\d{2})")


def derive_marker(content: str) -> Optional[str]:
    words = extract_title_line(content).split(maxsplit=1)
    if words and words[0] in OUTLINER_MARKERS:
        return words[0]
    return None


def derive_scheduled(content: str) -> Optional[int]:
    match = _SCHEDULED_PROPERTY_RE.search(content or "")
    if not match:
        return None
    return int("".join(match.groups()))


class InMemoryTextStore:
    """Dictionary-backed TextStore with change notifications."""

    def __init__(self) -> None:
        self._records: dict[str, StoreRecord] = {}
        self._order: list[str] = []
        self._pages: dict[str, str] = {}
        self._listeners: list[ChangeCallback] = []

    # -- helpers ---------------------------------------------------------

    def _build(self, record_id: str, content: str, page: Optional[str]) -> StoreRecord:
        return StoreRecord(
            id=record_id,
            content=content,
            marker=derive_marker(content),
            scheduled_raw=derive_scheduled(content),
            page=page,
        )

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("Store change listener failed")

    def add_record(
        self, content: str, page: str = "inbox", record_id: Optional[str] = None
    ) -> StoreRecord:
        """Synchronous seeding helper; creates the page when missing."""
        self._pages.setdefault(page.lower(), page)
        rid = record_id or str(uuid.uuid4())
        record = self._build(rid, content, page)
        self._records[rid] = record
        self._order.append(rid)
        return record

    def content_of(self, record_id: str) -> str:
        return self._records[record_id].content

    # -- TextStore -------------------------------------------------------

    async def query_scheduled(self, markers: Iterable[str]) -> list[StoreRecord]:
        allowed = set(markers)
        return [
            record
            for rid in self._order
            if (record := self._records[rid]).scheduled_raw is not None
            and (record.marker is None or record.marker in allowed)
        ]

    async def get_record(self, record_id: str) -> Optional[StoreRecord]:
        return self._records.get(record_id)

    async def update_record_content(self, record_id: str, content: str) -> None:
        existing = self._records.get(record_id)
        if existing is None:
            raise RecordNotFoundError(f"Block {record_id} not found")
        self._records[record_id] = self._build(record_id, content, existing.page)
        self._notify()

    async def append_record(self, page_name: str, content: str) -> StoreRecord:
        page = self._pages.get(page_name.lower())
        if page is None:
            raise StoreMutationError(f"Page {page_name!r} does not exist")
        record = self.add_record(content, page)
        self._notify()
        return record

    async def get_page(self, name: str) -> Optional[str]:
        return self._pages.get(name.lower())

    async def create_page(self, name: str) -> str:
        if not name.strip():
            raise StoreMutationError("Page name must not be empty")
        page = self._pages.setdefault(name.lower(), name)
        self._notify()
        return page

    def on_change(self, callback: ChangeCallback) -> Unsubscribe:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe
