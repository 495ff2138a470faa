"""
Registry clock.

Timestamps handed out by the registry never go backwards, even if the
wall clock does. Tests inject a deterministic time source.
"""

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MonotonicClock:
    """
    UTC clock that never returns a value earlier than its previous one.

    Args:
        source: Callable returning a timezone-aware datetime.
                Defaults to datetime.now(timezone.utc).
    """

    def __init__(self, source: Optional[Callable[[], datetime]] = None):
        self._source = source or _utc_now
        self._last: Optional[datetime] = None
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if current.tzinfo is None:
                raise ValueError("Clock source must return timezone-aware datetimes")
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current
