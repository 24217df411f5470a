"""Unread notification counter kept live by a filtered change feed."""

import logging
from typing import Any

from pydantic import ValidationError

from .constants import NOTIFICATIONS
from .exceptions import BackendError
from .models import AuthSession, Notification
from .ports import Backend, RealtimeTransport

logger = logging.getLogger(__name__)


class NotificationInbox:
    def __init__(self, backend: Backend, transport: RealtimeTransport) -> None:
        self.backend = backend
        self.transport = transport
        self.unread = 0
        self.latest: Notification | None = None
        self._session: AuthSession | None = None
        self._channel: Any = None

    @property
    def subscribed(self) -> bool:
        return self._channel is not None

    async def start(self, session: AuthSession) -> None:
        if self._session is not None:
            await self.stop()
        self._session = session

        try:
            self.unread = await self.backend.count(
                NOTIFICATIONS, filters={"user_id": session.user_id, "is_read": False}
            )
        except BackendError as e:
            logger.error("Error fetching unread count: %s", e.message)
            self.unread = 0

        try:
            self._channel = await self.transport.subscribe(
                NOTIFICATIONS,
                self._on_insert,
                event="INSERT",
                filter=f"user_id=eq.{session.user_id}",
            )
        except Exception:
            logger.error("Could not subscribe to notifications for %s", session.user_id, exc_info=True)

    async def stop(self) -> None:
        channel, self._channel = self._channel, None
        self._session = None
        self.unread = 0
        self.latest = None
        if channel is not None:
            try:
                await self.transport.unsubscribe(channel)
            except Exception:
                logger.warning("Failed to unsubscribe from notifications", exc_info=True)

    async def mark_all_read(self) -> None:
        if self._session is None:
            return
        try:
            await self.backend.update(
                NOTIFICATIONS,
                {"is_read": True},
                filters={"user_id": self._session.user_id, "is_read": False},
                returning=None,
            )
        except BackendError as e:
            logger.error("Error marking notifications read: %s", e.message)
            return
        self.unread = 0

    def _on_insert(self, raw: dict[str, Any]) -> None:
        if self._session is None:
            return
        self.unread += 1
        try:
            self.latest = Notification.model_validate(raw.get("new") or {})
        except ValidationError as e:
            logger.debug("Notification row without a known shape: %s", e)
