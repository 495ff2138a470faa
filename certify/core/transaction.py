"""
Unit of work for a single registry operation.

Components validate against settled state and record what they WANT to
happen: audit events via emit(), state changes via on_commit(). Nothing
is applied until the registry has committed the events. A failure anywhere
in the operation discards both lists, so a rejected operation leaves no
state change and no audit event behind.
"""

from datetime import datetime
from typing import Callable

from pydantic import BaseModel

from ..db.store import PendingEvent
from ..schemas import EventType


class Transaction:
    """Collects the events and deferred state changes of one operation."""

    def __init__(self, caller: str, timestamp: datetime):
        self.caller = caller
        self.timestamp = timestamp
        self._pending: list[PendingEvent] = []
        self._effects: list[Callable[[], None]] = []

    def emit(self, event_type: EventType, payload: BaseModel) -> None:
        self._pending.append(
            PendingEvent(
                event_type=event_type,
                actor=self.caller,
                payload=payload.model_dump(mode="json"),
            )
        )

    def on_commit(self, effect: Callable[[], None]) -> None:
        """Effects must not fail: all validation happens before they are queued."""
        self._effects.append(effect)

    @property
    def pending_events(self) -> list[PendingEvent]:
        return list(self._pending)

    def apply(self) -> None:
        for effect in self._effects:
            effect()
