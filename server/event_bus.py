"""
SSE bridge for change events and toasts.

Every connected client gets its own queue. The bridge subscribes to the
sync service's ChangeBus and also serves as its Notifier, so the
``/global/event`` stream carries both bus events and toast messages.
"""

import asyncio
import logging
from typing import Any

from core import ChangeBus, ChangeEvent, Subscription
from core.ports import Severity

logger = logging.getLogger(__name__)

TOAST_EVENT = "toast"


class SSEEventBus:
    """Fans bus events and toasts out to SSE subscriber queues."""

    def __init__(self) -> None:
        self.subscribers: list[asyncio.Queue[dict[str, Any]]] = []
        self._subscription: Subscription | None = None

    def attach(self, bus: ChangeBus) -> Subscription:
        """Forward every event published on ``bus`` to the SSE subscribers."""
        if self._subscription is not None:
            self._subscription.close()
        self._subscription = bus.subscribe(self.publish_change, name="sse_bridge")
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def publish_change(self, event: ChangeEvent) -> None:
        self._broadcast({"type": event.kind, **event.model_dump(mode="json")})

    def notify(self, message: str, severity: Severity) -> None:
        """Notifier port: toasts go to the log and to every stream."""
        logger.info("Toast [%s]: %s", severity, message)
        self._broadcast({"type": TOAST_EVENT, "message": message, "severity": severity})

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        """
        Create a new subscription queue.

        Returns:
            A queue that will receive all published events
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        if queue in self.subscribers:
            self.subscribers.remove(queue)

    def _broadcast(self, data: dict[str, Any]) -> None:
        # Bus delivery is synchronous, so queues are unbounded and never block
        for queue in list(self.subscribers):
            queue.put_nowait(data)


# Global event bus instance
_event_bus: SSEEventBus | None = None


def get_event_bus() -> SSEEventBus:
    """Get the global event bus instance, creating it if necessary."""
    global _event_bus
    if _event_bus is None:
        _event_bus = SSEEventBus()
    return _event_bus
