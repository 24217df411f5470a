"""
Change feed subscriber.

Keeps one realtime subscription per watched table for the lifetime of a
user session, turns raw push payloads into ChangeEvents and republishes them
on the ChangeBus.

Each table gets its own queue and worker task so events of one table are
handled strictly in delivery order, while different tables proceed
independently.
"""

import asyncio
import logging
from typing import Any, Iterable, Literal

from pydantic import BaseModel, Field, ValidationError

from .constants import PROFILES, TASK_SELECT, TASKS, WATCHED_TABLES
from .echo import EchoSuppressor
from .events import (
    AddEvent,
    ChangeBus,
    ChangeEvent,
    ProfileChangeEvent,
    UpdateEvent,
    invalidate,
    task_deleted,
)
from .exceptions import BackendError, FetchError, TransportError
from .models import AuthSession, Profile, Task
from .ports import Backend, RealtimeTransport

logger = logging.getLogger(__name__)


class RawChange(BaseModel):
    """Transport-level change payload, validated at the feed boundary."""

    eventType: Literal["INSERT", "UPDATE", "DELETE"]
    table: str | None = None
    new: dict[str, Any] = Field(default_factory=dict)
    old: dict[str, Any] = Field(default_factory=dict)

    @property
    def record_id(self) -> Any:
        row = self.old if self.eventType == "DELETE" else self.new
        return row.get("id")


class _TableFeed:
    """Subscription state for one watched table."""

    def __init__(self, table: str) -> None:
        self.table = table
        self.channel: Any = None
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.worker: asyncio.Task[None] | None = None
        self.active = True

    def enqueue(self, raw: dict[str, Any]) -> None:
        if not self.active:
            logger.debug("Dropping %s event after teardown", self.table)
            return
        self.queue.put_nowait(raw)


class ChangeFeedSubscriber:
    """Filters, enriches and republishes push events from the watched tables."""

    def __init__(
        self,
        transport: RealtimeTransport,
        backend: Backend,
        bus: ChangeBus,
        suppressor: EchoSuppressor,
        tables: Iterable[str] = WATCHED_TABLES,
    ) -> None:
        self.transport = transport
        self.backend = backend
        self.bus = bus
        self.suppressor = suppressor
        self.tables = tuple(tables)
        self._feeds: dict[str, _TableFeed] = {}
        self._session: AuthSession | None = None

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def open_handles(self) -> list[str]:
        return [table for table, feed in self._feeds.items() if feed.active]

    async def start(self, session: AuthSession) -> None:
        """Open one subscription per watched table for this session."""
        if self._session is not None:
            await self.stop()

        self._session = session
        for table in self.tables:
            feed = _TableFeed(table)
            try:
                feed.channel = await self.transport.subscribe(table, feed.enqueue)
            except Exception as e:
                # The transport owns reconnection; a table we could not open stays dark
                error = TransportError(f"Could not subscribe to {table}: {e}")
                logger.error("%s", error, exc_info=True)
                continue
            feed.worker = asyncio.create_task(self._drain(feed), name=f"feed:{table}")
            self._feeds[table] = feed

        logger.info(
            "Change feed started for user %s (%d/%d tables)",
            session.user_id,
            len(self._feeds),
            len(self.tables),
        )

    async def stop(self) -> None:
        """Tear down every subscription; in-flight results are discarded."""
        feeds = list(self._feeds.values())
        self._feeds.clear()
        self._session = None

        for feed in feeds:
            feed.active = False
            if feed.worker is not None:
                feed.worker.cancel()
            try:
                await self.transport.unsubscribe(feed.channel)
            except Exception:
                logger.warning("Failed to unsubscribe from %s", feed.table, exc_info=True)

        workers = [feed.worker for feed in feeds if feed.worker is not None]
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        if feeds:
            logger.info("Change feed stopped (%d tables)", len(feeds))

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        for feed in list(self._feeds.values()):
            await feed.queue.join()

    async def _drain(self, feed: _TableFeed) -> None:
        while True:
            raw = await feed.queue.get()
            try:
                await self._process(feed, raw)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error handling %s change", feed.table)
            finally:
                feed.queue.task_done()

    async def _process(self, feed: _TableFeed, raw: dict[str, Any]) -> None:
        try:
            change = RawChange.model_validate(raw)
        except ValidationError as e:
            logger.warning("Dropping malformed %s payload: %s", feed.table, e.errors())
            return

        record_id = change.record_id
        if record_id is not None and self.suppressor.should_suppress(
            feed.table, record_id, change.eventType
        ):
            return

        event = await self._normalize(feed.table, change)
        if event is None:
            return

        # The session may have ended while we were fetching
        if not feed.active:
            logger.debug("Discarding %s event for torn-down subscription", event.kind)
            return
        self.bus.publish(event)

    async def _normalize(self, table: str, change: RawChange) -> ChangeEvent | None:
        if table == TASKS:
            if change.eventType == "DELETE":
                if change.record_id is None:
                    logger.warning("Task delete without id, ignoring")
                    return None
                return task_deleted(change.record_id)
            try:
                task = await self._fetch_task(change.record_id)
            except FetchError as e:
                logger.warning("%s", e)
                return None
            return AddEvent(payload=task) if change.eventType == "INSERT" else UpdateEvent(payload=task)

        if (
            table == PROFILES
            and change.eventType != "DELETE"
            and self._session is not None
            and str(change.new.get("id")) == self._session.user_id
        ):
            try:
                return ProfileChangeEvent(payload=Profile.model_validate(change.new))
            except ValidationError as e:
                logger.warning("Own profile payload did not validate, invalidating instead: %s", e)

        return invalidate(table)

    async def _fetch_task(self, task_id: Any) -> Task:
        """Read the full denormalized task; the push payload is never trusted."""
        if task_id is None:
            raise FetchError(TASKS, task_id, "missing id")
        try:
            row = await self.backend.select(TASKS, TASK_SELECT, filters={"id": task_id}, single=True)
        except BackendError as e:
            raise FetchError(TASKS, task_id, e.message) from e
        if not row:
            raise FetchError(TASKS, task_id, "no row returned")
        try:
            return Task.model_validate(row)
        except ValidationError as e:
            raise FetchError(TASKS, task_id, str(e)) from e
