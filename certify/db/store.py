"""
Audit Log Abstraction

This module defines the AuditLog interface and the in-memory implementation.
The PostgreSQL implementation lives in certify.db.postgres.

The AuditLog is responsible for:
- Atomic append of a batch of events (all or none)
- Sequence numbers and hash chaining (single source of truth)
- Fan-out of committed events to external subscribers

The registry core retains responsibility for:
- Deciding which events an operation produces
- Applying state changes only after the batch is committed

TRANSACTION CONTRACT:
All appends go through the begin_append() context manager:

    with log.begin_append() as ctx:
        events = ctx.build(pending, created_at)
        ctx.commit(events)

Leaving the block without commit() rolls back; nothing is appended.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Generator, Optional
from uuid import uuid4

from ..core.hasher import Hasher
from ..observability import get_logger
from ..schemas import AuditEvent, EventType

logger = get_logger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================

class AuditLogError(Exception):
    """Base exception for audit log errors."""
    pass


class ChainIntegrityError(AuditLogError):
    """Raised when chain integrity validation fails."""
    pass


class AuditLogUnavailable(AuditLogError):
    """Raised when the backing store cannot be reached or is busy."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class ChainHead:
    """Current state of the chain head. Locked during append."""
    last_sequence: int  # -1 means empty log
    last_event_hash: Optional[str]

    @property
    def next_sequence(self) -> int:
        return self.last_sequence + 1

    @property
    def is_empty(self) -> bool:
        return self.last_sequence == -1


@dataclass(frozen=True)
class PendingEvent:
    """An event an operation wants to emit, before it has a place in the chain."""
    event_type: EventType
    actor: str
    payload: dict[str, Any]


AuditSubscriber = Callable[[list[AuditEvent]], None]


@dataclass
class AppendContext:
    """
    Transaction context for one atomic batch append.

    Holds the chain head read under lock and whatever connection state the
    backend needs, so commit/rollback happen where the lock was taken.
    """
    head: ChainHead
    _log: "AuditLog"
    _conn: Any = field(default=None)
    _cursor: Any = field(default=None)
    _committed: bool = field(default=False, init=False)
    _rolled_back: bool = field(default=False, init=False)

    def build(self, pending: list[PendingEvent], created_at: datetime) -> list[AuditEvent]:
        """Place pending events on the chain after the current head."""
        events: list[AuditEvent] = []
        sequence = self.head.next_sequence
        previous_hash = self.head.last_event_hash

        for item in pending:
            body = AuditEvent.build_hash_body(
                sequence_number=sequence,
                event_type=item.event_type,
                actor=item.actor,
                payload=item.payload,
                created_at=created_at,
            )
            event_hash = Hasher.hash_event(body, previous_hash)
            event = AuditEvent(
                event_id=uuid4(),
                sequence_number=sequence,
                event_type=item.event_type,
                actor=item.actor,
                payload=item.payload,
                previous_event_hash=previous_hash,
                event_hash=event_hash,
                created_at=created_at,
            )
            event.validate_chain_rules()
            events.append(event)
            previous_hash = event_hash
            sequence += 1

        return events

    def commit(self, events: list[AuditEvent]) -> list[AuditEvent]:
        if self._committed:
            raise AuditLogError("Transaction already committed")
        if self._rolled_back:
            raise AuditLogError("Transaction already rolled back")

        result = self._log._do_commit(self, events)
        self._committed = True
        return result

    def rollback(self) -> None:
        if not self._committed and not self._rolled_back:
            self._log._do_rollback(self)
            self._rolled_back = True


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class AuditLog(ABC):
    """
    Append-only audit event log.

    Implementations must ensure:
    1. A batch is appended entirely or not at all
    2. No gaps or duplicates in sequence numbers
    3. Every event links to the hash of the one before it
    """

    def __init__(self) -> None:
        self._subscribers: list[AuditSubscriber] = []

    @contextmanager
    @abstractmethod
    def begin_append(self) -> Generator[AppendContext, None, None]:
        """Lock the chain head and yield an AppendContext."""
        pass

    @abstractmethod
    def _do_commit(self, ctx: AppendContext, events: list[AuditEvent]) -> list[AuditEvent]:
        """Internal: persist a built batch. Use ctx.commit() instead."""
        pass

    @abstractmethod
    def _do_rollback(self, ctx: AppendContext) -> None:
        """Internal: abandon the transaction. Use ctx.rollback() instead."""
        pass

    @abstractmethod
    def list_all(self) -> list[AuditEvent]:
        """All events ordered by sequence number."""
        pass

    @abstractmethod
    def list_since(self, sequence_number: int) -> list[AuditEvent]:
        """Events with sequence_number >= the given value, in order."""
        pass

    @abstractmethod
    def get_head(self) -> ChainHead:
        """Current chain head, read without locking."""
        pass

    @abstractmethod
    def get_event_count(self) -> int:
        pass

    # ================================================================
    # CONVENIENCE API
    # ================================================================

    def append(self, pending: list[PendingEvent], created_at: datetime) -> list[AuditEvent]:
        """Build and commit a batch atomically. Returns the committed events."""
        if not pending:
            return []
        with self.begin_append() as ctx:
            events = ctx.build(pending, created_at)
            return ctx.commit(events)

    def subscribe(self, callback: AuditSubscriber) -> None:
        """Register a callback receiving each committed batch."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: AuditSubscriber) -> None:
        self._subscribers.remove(callback)

    def publish(self, events: list[AuditEvent]) -> None:
        """
        Deliver a committed batch to subscribers.

        A failing subscriber is logged and skipped; committed events stay committed.
        """
        if not events:
            return
        for callback in list(self._subscribers):
            try:
                callback(events)
            except Exception:
                logger.exception(
                    "Audit subscriber failed",
                    subscriber=repr(callback),
                    first_sequence=events[0].sequence_number,
                    last_sequence=events[-1].sequence_number,
                )

    def verify_integrity(self) -> bool:
        """Verify the whole stored chain. Returns False on any break."""
        try:
            self.verify_chain(self.list_all())
        except ChainIntegrityError:
            return False
        return True

    @staticmethod
    def verify_chain(events: list[AuditEvent]) -> None:
        """
        Verify a complete event chain.

        Raises ChainIntegrityError at the first broken link.
        """
        prev_hash = None
        expected_sequence = 0

        for event in events:
            if event.sequence_number != expected_sequence:
                raise ChainIntegrityError(
                    f"Sequence gap or out-of-order event. "
                    f"Expected {expected_sequence}, got {event.sequence_number}"
                )

            if event.previous_event_hash != prev_hash:
                raise ChainIntegrityError(
                    f"Chain linkage broken at sequence {expected_sequence}"
                )

            try:
                event.validate_chain_rules()
            except ValueError as e:
                raise ChainIntegrityError(str(e)) from e

            computed_hash = Hasher.hash_event(event.hash_body(), prev_hash)
            if computed_hash != event.event_hash:
                raise ChainIntegrityError(
                    f"Hash verification failed at sequence {expected_sequence}. "
                    f"Computed: {computed_hash[:16]}..., stored: {event.event_hash[:16]}..."
                )

            prev_hash = event.event_hash
            expected_sequence += 1

    def _check_batch(self, head: ChainHead, events: list[AuditEvent]) -> None:
        """Re-validate a batch against the locked head before persisting."""
        expected_sequence = head.next_sequence
        prev_hash = head.last_event_hash

        for event in events:
            if event.sequence_number != expected_sequence:
                raise ChainIntegrityError(
                    f"Sequence mismatch: expected {expected_sequence}, got {event.sequence_number}"
                )
            if event.previous_event_hash != prev_hash:
                raise ChainIntegrityError(
                    f"Previous hash mismatch at sequence {expected_sequence}"
                )
            if Hasher.hash_event(event.hash_body(), prev_hash) != event.event_hash:
                raise ChainIntegrityError(
                    f"Hash verification failed at sequence {expected_sequence}"
                )
            prev_hash = event.event_hash
            expected_sequence += 1


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryAuditLog(AuditLog):
    """
    In-memory implementation of AuditLog.

    Suitable for development, tests and single-process deployments
    that do not need the audit trail to survive restarts.
    """

    def __init__(self) -> None:
        super().__init__()
        self._events: list[AuditEvent] = []
        self._head = ChainHead(last_sequence=-1, last_event_hash=None)
        self._lock = Lock()

    @contextmanager
    def begin_append(self) -> Generator[AppendContext, None, None]:
        self._lock.acquire()
        head = ChainHead(
            last_sequence=self._head.last_sequence,
            last_event_hash=self._head.last_event_hash,
        )
        ctx = AppendContext(head=head, _log=self, _conn="in_memory_lock")

        try:
            yield ctx
        finally:
            if not ctx._committed and not ctx._rolled_back:
                ctx.rollback()

    def _do_commit(self, ctx: AppendContext, events: list[AuditEvent]) -> list[AuditEvent]:
        if ctx._conn != "in_memory_lock":
            raise AuditLogError("_do_commit called outside begin_append context")

        try:
            self._check_batch(self._head, events)
            self._events.extend(events)
            if events:
                self._head = ChainHead(
                    last_sequence=events[-1].sequence_number,
                    last_event_hash=events[-1].event_hash,
                )
            return list(events)
        finally:
            ctx._conn = None
            self._lock.release()

    def _do_rollback(self, ctx: AppendContext) -> None:
        if ctx._conn == "in_memory_lock":
            ctx._conn = None
            self._lock.release()

    def list_all(self) -> list[AuditEvent]:
        return list(self._events)

    def list_since(self, sequence_number: int) -> list[AuditEvent]:
        return [e for e in self._events if e.sequence_number >= sequence_number]

    def get_head(self) -> ChainHead:
        return ChainHead(
            last_sequence=self._head.last_sequence,
            last_event_hash=self._head.last_event_hash,
        )

    def get_event_count(self) -> int:
        return len(self._events)
