"""
Storage layer: the append-only event log the ledger commits into.
"""

from .store import (
    AppendContext,
    ChainHead,
    ChainIntegrityError,
    EventStore,
    EventStoreError,
    InMemoryEventStore,
)

__all__ = [
    "AppendContext",
    "ChainHead",
    "ChainIntegrityError",
    "EventStore",
    "EventStoreError",
    "InMemoryEventStore",
]
