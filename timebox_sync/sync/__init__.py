"""Reconciliation between the text store, the optimistic ledger and the grid."""

from .actions import CalendarActions
from .drag_resolver import CellLocator, DragIntentResolver, DropIntent
from .event_store import EventStore
from .ledger import OptimisticEntry, OptimisticLedger, ReconcileOutcome

__all__ = [
    "CalendarActions",
    "CellLocator",
    "DragIntentResolver",
    "DropIntent",
    "EventStore",
    "OptimisticEntry",
    "OptimisticLedger",
    "ReconcileOutcome",
]
