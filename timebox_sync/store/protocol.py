"""Protocol definitions for the outliner block store the engine talks to.

The store owns block persistence. The engine only reads scheduled blocks,
rewrites block content and appends new blocks to pages.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Optional, Protocol

from ..models import StoreRecord

ChangeCallback = Callable[[], None]
Unsubscribe = Callable[[], None]


class TextStoreError(Exception):
    """Base exception for text-store I/O failures."""


class RecordNotFoundError(TextStoreError):
    """The referenced block does not exist (any more)."""


class StoreMutationError(TextStoreError):
    """The store rejected a write."""


class TextStore(Protocol):
    """Async key-value-like document store holding outliner blocks."""

    async def query_scheduled(self, markers: Iterable[str]) -> list[StoreRecord]:
        """Blocks carrying a scheduled property whose marker is absent or in markers."""
        ...

    async def get_record(self, record_id: str) -> Optional[StoreRecord]:
        """Fetch one block, or None when it does not exist."""
        ...

    async def update_record_content(self, record_id: str, content: str) -> None:
        """Replace a block's text.

        Raises:
            RecordNotFoundError: If the block does not exist
            StoreMutationError: If the write is rejected
        """
        ...

    async def append_record(self, page_name: str, content: str) -> StoreRecord:
        """Append a new block to a page.

        Raises:
            TextStoreError: If the page is missing or the write is rejected
        """
        ...

    async def get_page(self, name: str) -> Optional[str]:
        """Return the page name as stored, or None when it does not exist."""
        ...

    async def create_page(self, name: str) -> str:
        """Create a page and return its name.

        Raises:
            StoreMutationError: If the page cannot be created
        """
        ...

    def on_change(self, callback: ChangeCallback) -> Unsubscribe:
        """Register a callback fired after any mutation; returns an unsubscribe function."""
        ...


class Notifier(Protocol):
    """User-visible transient notices (toasts)."""

    def show_message(self, text: str, level: str = "info") -> None:
        ...
