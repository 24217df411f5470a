"""
Change events and the ChangeBus.

Every "something changed" announcement inside the client is a ChangeEvent,
a tagged union discriminated on ``kind``. The ChangeBus delivers events
synchronously to its subscribers in subscription order.
"""

import logging
import time
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .models import Profile, Task

logger = logging.getLogger(__name__)


# =============================================================================
# Payloads
# =============================================================================


class DeletePayload(BaseModel):
    id: int | str


class DeleteManyPayload(BaseModel):
    ids: list[int | str]


class InvalidatePayload(BaseModel):
    table: str | None = None
    reason: str | None = None


# =============================================================================
# Events
# =============================================================================


class _BaseChange(BaseModel):
    occurred_at: float = Field(
        default=0.0,
        description="Monotonic clock value assigned on publish, diagnostics only",
    )


class AddEvent(_BaseChange):
    kind: Literal["add"] = "add"
    payload: Task


class UpdateEvent(_BaseChange):
    kind: Literal["update"] = "update"
    payload: Task


class DeleteEvent(_BaseChange):
    kind: Literal["delete"] = "delete"
    payload: DeletePayload


class DeleteManyEvent(_BaseChange):
    kind: Literal["delete_many"] = "delete_many"
    payload: DeleteManyPayload


class BatchInvalidateEvent(_BaseChange):
    kind: Literal["batch_invalidate"] = "batch_invalidate"
    payload: InvalidatePayload

    @property
    def table(self) -> str | None:
        return self.payload.table


class ProfileChangeEvent(_BaseChange):
    kind: Literal["profile_change"] = "profile_change"
    payload: Profile


ChangeEvent = Annotated[
    Union[AddEvent, UpdateEvent, DeleteEvent, DeleteManyEvent, BatchInvalidateEvent, ProfileChangeEvent],
    Field(discriminator="kind"),
]

change_event_adapter: TypeAdapter[ChangeEvent] = TypeAdapter(ChangeEvent)


def parse_change_event(data: dict[str, Any]) -> ChangeEvent:
    """Validate a loosely typed dict into a ChangeEvent (raises ValidationError)."""
    return change_event_adapter.validate_python(data)


def invalidate(table: str | None = None, reason: str | None = None) -> BatchInvalidateEvent:
    """Build a batch_invalidate event."""
    return BatchInvalidateEvent(payload=InvalidatePayload(table=table, reason=reason))


def task_deleted(task_id: int | str) -> DeleteEvent:
    return DeleteEvent(payload=DeletePayload(id=task_id))


# =============================================================================
# ChangeBus
# =============================================================================

Handler = Callable[[Any], None]


class Subscription:
    """
    Handle returned by ChangeBus.subscribe.

    The owner must call close() when its scope ends. Closing twice is a no-op.
    """

    def __init__(self, bus: "ChangeBus", handler: Handler, name: str):
        self._bus = bus
        self.handler = handler
        self.name = name
        self.active = True

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._bus._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Subscription({self.name!r}, active={self.active})"


class ChangeBus:
    """
    Synchronous publish/subscribe for change events.

    No persistence and no replay: a subscriber only sees events published
    while it is attached. A handler that raises is logged and skipped so the
    remaining handlers still receive the event.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._subscriptions: list[Subscription] = []

    def subscribe(self, handler: Handler, name: str | None = None) -> Subscription:
        subscription = Subscription(self, handler, name or getattr(handler, "__qualname__", repr(handler)))
        self._subscriptions.append(subscription)
        logger.debug("Bus subscriber attached: %s", subscription.name)
        return subscription

    def publish(self, event: ChangeEvent) -> ChangeEvent:
        """Stamp the event and deliver it to every current subscriber."""
        stamped = event.model_copy(update={"occurred_at": self._clock()})
        logger.debug("Publishing %s to %d subscriber(s)", stamped.kind, len(self._subscriptions))

        # Snapshot so handlers may subscribe/unsubscribe during delivery
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.handler(stamped)
            except Exception:
                logger.exception(
                    "Bus handler %s failed on %s event", subscription.name, stamped.kind
                )
        return stamped

    @property
    def open_subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Bus subscriber detached: %s", subscription.name)
