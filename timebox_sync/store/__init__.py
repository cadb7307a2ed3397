"""Outliner text-store contract and an in-memory implementation."""

from .memory_store import InMemoryTextStore
from .protocol import RecordNotFoundError, StoreMutationError, TextStore, TextStoreError

__all__ = [
    "InMemoryTextStore",
    "RecordNotFoundError",
    "StoreMutationError",
    "TextStore",
    "TextStoreError",
]
