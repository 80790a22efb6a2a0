"""
Event Store

The host side of the ledger: an append-only, hash-chained log of events
with all-or-nothing batch append.

The EventStore is the single source of truth for:
- Sequence numbers
- Previous event hashes (chain linkage)
- Append ordering (one invocation at a time)

TRANSACTION CONTRACT:
All appends go through begin_append(). One ledger invocation commits
its whole event batch at once, or nothing:

    with store.begin_append() as ctx:
        seq, prev_hash = ctx.head.next_sequence, ctx.head.last_event_hash
        # ... build and hash events ...
        ctx.commit(events)
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Generator, Optional

from ..core.errors import ChainError
from ..core.hasher import Hasher
from ..schemas import LedgerEvent


# ============================================================
# EXCEPTIONS
# ============================================================

class EventStoreError(ChainError):
    """Base exception for event store errors. Reported as ChainError."""
    pass


class ChainIntegrityError(EventStoreError):
    """Raised when a committed batch would break the chain."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class ChainHead:
    """Current state of the chain head."""
    last_sequence: int  # -1 means empty store
    last_event_hash: Optional[str]

    @property
    def next_sequence(self) -> int:
        return self.last_sequence + 1

    @property
    def is_empty(self) -> bool:
        return self.last_sequence == -1


@dataclass
class AppendContext:
    """
    Transaction context for one atomic append.

    Holds the head snapshot taken when the lock was acquired and makes
    sure commit/rollback happen exactly once.
    """
    head: ChainHead
    _store: "EventStore"
    _committed: bool = field(default=False, init=False)
    _rolled_back: bool = field(default=False, init=False)

    def commit(self, events: list[LedgerEvent]) -> list[LedgerEvent]:
        if self._committed:
            raise EventStoreError("Transaction already committed")
        if self._rolled_back:
            raise EventStoreError("Transaction already rolled back")

        result = self._store._do_commit(self, events)
        self._committed = True
        return result

    def rollback(self) -> None:
        if not self._committed and not self._rolled_back:
            self._store._do_rollback(self)
            self._rolled_back = True


def validate_batch(head: ChainHead, events: list[LedgerEvent]) -> None:
    """
    Check that events extend head without gaps, forks or bad hashes.

    Raises ChainIntegrityError on the first violation.
    """
    expected_sequence = head.next_sequence
    previous_hash = head.last_event_hash

    for event in events:
        if event.sequence_number != expected_sequence:
            raise ChainIntegrityError(
                f"Sequence mismatch: expected {expected_sequence}, "
                f"got {event.sequence_number}"
            )
        if event.previous_event_hash != previous_hash:
            raise ChainIntegrityError(
                f"Previous hash mismatch at sequence {expected_sequence}: "
                f"expected {previous_hash}, got {event.previous_event_hash}"
            )
        if not Hasher.verify_chain(event.hashed_content(), event.event_hash, previous_hash):
            raise ChainIntegrityError(
                f"Hash verification failed at sequence {expected_sequence}"
            )
        previous_hash = event.event_hash
        expected_sequence += 1


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class EventStore(ABC):
    """
    Abstract base class for event storage.

    Implementations must ensure:
    1. Atomic batch append through begin_append()
    2. No gaps or duplicates in sequence numbers
    3. Chain linkage is always correct
    """

    @contextmanager
    @abstractmethod
    def begin_append(self) -> Generator[AppendContext, None, None]:
        """
        Lock the chain head and yield an AppendContext.

        Rolls back automatically if the block exits without committing.
        """
        pass

    @abstractmethod
    def _do_commit(self, ctx: AppendContext, events: list[LedgerEvent]) -> list[LedgerEvent]:
        pass

    @abstractmethod
    def _do_rollback(self, ctx: AppendContext) -> None:
        pass

    @abstractmethod
    def list_all(self) -> list[LedgerEvent]:
        """All events ordered by sequence number."""
        pass

    @abstractmethod
    def list_for_subject(self, subject: str) -> list[LedgerEvent]:
        """Events whose subject is the given address or key."""
        pass

    @abstractmethod
    def get_head(self) -> ChainHead:
        """Current chain head, without locking."""
        pass

    @abstractmethod
    def get_event_count(self) -> int:
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryEventStore(EventStore):
    """
    In-memory EventStore.

    Suitable for development, testing and single-process deployments
    without durability requirements.
    """

    def __init__(self):
        self._events: list[LedgerEvent] = []
        self._head = ChainHead(last_sequence=-1, last_event_hash=None)
        self._lock = Lock()

    @contextmanager
    def begin_append(self) -> Generator[AppendContext, None, None]:
        self._lock.acquire()
        ctx = AppendContext(
            head=ChainHead(
                last_sequence=self._head.last_sequence,
                last_event_hash=self._head.last_event_hash,
            ),
            _store=self,
        )
        try:
            yield ctx
        finally:
            if not ctx._committed and not ctx._rolled_back:
                ctx.rollback()
            self._lock.release()

    def _do_commit(self, ctx: AppendContext, events: list[LedgerEvent]) -> list[LedgerEvent]:
        # Validate the whole batch before touching the log
        validate_batch(self._head, events)

        self._events.extend(events)
        if events:
            last = events[-1]
            self._head = ChainHead(
                last_sequence=last.sequence_number,
                last_event_hash=last.event_hash,
            )
        return events

    def _do_rollback(self, ctx: AppendContext) -> None:
        # Nothing was written; the lock is released by begin_append
        pass

    def list_all(self) -> list[LedgerEvent]:
        return sorted(self._events, key=lambda e: e.sequence_number)

    def list_for_subject(self, subject: str) -> list[LedgerEvent]:
        subject = subject.lower()
        return [e for e in self.list_all() if e.subject == subject]

    def get_head(self) -> ChainHead:
        return ChainHead(
            last_sequence=self._head.last_sequence,
            last_event_hash=self._head.last_event_hash,
        )

    def get_event_count(self) -> int:
        return len(self._events)

    def clear(self) -> None:
        """Clear all events (for testing only)."""
        with self._lock:
            self._events.clear()
            self._head = ChainHead(last_sequence=-1, last_event_hash=None)
