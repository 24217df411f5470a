"""
Echo suppression for locally originated writes.

Before the client writes a row it marks ``(table, id)`` as pending. The next
non-delete push event for that row is the echo of our own write and is
swallowed exactly once. Markers expire after a grace window so a lost echo
can never mask later external changes.
"""

import asyncio
import logging
import time
from typing import Callable

from .constants import DEFAULT_ECHO_GRACE_SECONDS, DEFAULT_ECHO_SWEEP_SECONDS

logger = logging.getLogger(__name__)

PendingKey = tuple[str, str]


def _key(table: str, record_id: object) -> PendingKey:
    # Push payloads and local records may disagree on int vs str ids
    return (table, str(record_id))


class EchoSuppressor:
    """Tracks pending local writes and consumes one matching echo per write."""

    def __init__(
        self,
        grace_seconds: float = DEFAULT_ECHO_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.grace_seconds = grace_seconds
        self._clock = clock
        self._pending: dict[PendingKey, float] = {}

    def mark_pending(self, table: str, record_id: object) -> None:
        """
        Record that a write to ``(table, record_id)`` is about to be issued.

        A second mark before the echo arrives only refreshes the deadline;
        the first matching echo still consumes the single marker.
        """
        key = _key(table, record_id)
        self._pending[key] = self._clock() + self.grace_seconds
        logger.debug("Marked pending write %s:%s", *key)

    def discard(self, table: str, record_id: object) -> None:
        """Drop a marker, e.g. when the write failed and no echo will follow."""
        self._pending.pop(_key(table, record_id), None)

    def should_suppress(self, table: str, record_id: object, event_kind: str) -> bool:
        """
        Return True if this event is the echo of a pending local write.

        The marker is removed in the same step as the check. Deletes are never
        suppressed and leave any marker untouched.
        """
        if event_kind.lower() == "delete":
            return False

        key = _key(table, record_id)
        deadline = self._pending.pop(key, None)
        if deadline is None:
            return False
        if deadline < self._clock():
            logger.debug("Pending write %s:%s expired before its echo arrived", *key)
            return False

        logger.debug("Suppressed echo for %s:%s", *key)
        return True

    def is_pending(self, table: str, record_id: object) -> bool:
        deadline = self._pending.get(_key(table, record_id))
        return deadline is not None and deadline >= self._clock()

    def sweep(self) -> int:
        """Remove expired markers. Returns how many were dropped."""
        now = self._clock()
        expired = [key for key, deadline in self._pending.items() if deadline < now]
        for key in expired:
            del self._pending[key]
        if expired:
            logger.debug("Swept %d expired pending write(s)", len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float = DEFAULT_ECHO_SWEEP_SECONDS) -> None:
        """Periodically sweep until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def clear(self) -> None:
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)
