"""Optimistic update ledger.

Holds locally committed drag/resize values until a store read reflects them or
they time out. Entries move pending -> confirmed (deleted on match) or
pending -> abandoned (deleted on timeout); there is no other transition.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0


class ReconcileOutcome(str, Enum):
    """Result of comparing a pending entry with a fresh store read."""

    NO_ENTRY = "no_entry"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    ABANDONED = "abandoned"


@dataclass
class OptimisticEntry:
    """A locally committed schedule value the store has not echoed back yet."""

    record_id: str
    start: datetime
    end: Optional[datetime]
    all_day: bool
    created_at: float


def schedule_values_match(
    pending_start: datetime, pending_all_day: bool, stored_start: datetime, stored_all_day: bool
) -> bool:
    """Minute-granularity comparison; all-day values compare by date only."""
    if pending_all_day != stored_all_day:
        return False
    if pending_all_day:
        return pending_start.date() == stored_start.date()
    return pending_start.replace(second=0, microsecond=0) == stored_start.replace(
        second=0, microsecond=0
    )


class OptimisticLedger:
    """Per-record pending values keyed by record id."""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._entries: dict[str, OptimisticEntry] = {}

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self, record_id: str, start: datetime, end: Optional[datetime], all_day: bool
    ) -> OptimisticEntry:
        """Create or replace the pending entry for a record."""
        entry = OptimisticEntry(
            record_id=record_id, start=start, end=end, all_day=all_day, created_at=self._clock()
        )
        self._entries[record_id] = entry
        logger.debug("Ledger: pending %s -> %s (all_day=%s)", record_id, start, all_day)
        return entry

    def get(self, record_id: str) -> Optional[OptimisticEntry]:
        return self._entries.get(record_id)

    def discard(self, record_id: str) -> None:
        self._entries.pop(record_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def is_expired(self, entry: OptimisticEntry) -> bool:
        return self._clock() - entry.created_at >= self.timeout_seconds

    def drop_expired(self) -> list[str]:
        """Delete timed-out entries whose records were never seen again."""
        expired = [rid for rid, entry in self._entries.items() if self.is_expired(entry)]
        for rid in expired:
            del self._entries[rid]
        return expired

    def reconcile(
        self, record_id: str, stored_start: datetime, stored_all_day: bool
    ) -> tuple[ReconcileOutcome, Optional[OptimisticEntry]]:
        """Compare a fresh store read against the pending entry for ``record_id``.

        Returns:
            ``(NO_ENTRY, None)`` when nothing is pending; ``(CONFIRMED, entry)``
            and ``(ABANDONED, entry)`` after deleting the entry; ``(PENDING,
            entry)`` when the optimistic value should still be shown.
        """
        entry = self._entries.get(record_id)
        if entry is None:
            return ReconcileOutcome.NO_ENTRY, None

        if schedule_values_match(entry.start, entry.all_day, stored_start, stored_all_day):
            del self._entries[record_id]
            logger.debug("Ledger: %s confirmed by store", record_id)
            return ReconcileOutcome.CONFIRMED, entry

        if self.is_expired(entry):
            del self._entries[record_id]
            logger.warning(
                "Ledger: %s not confirmed within %.0fs, accepting stored value %s",
                record_id,
                self.timeout_seconds,
                stored_start,
            )
            return ReconcileOutcome.ABANDONED, entry

        return ReconcileOutcome.PENDING, entry
