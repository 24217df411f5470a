"""
Local projection store.

A small persisted cache of the current user's view of one collection
(for example "projects I belong to"). The store is the only writer to its
cache key; it refreshes on session change and on relevant ChangeBus events.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from .constants import DEFAULT_CACHE_TTL_SECONDS, GUEST_KEY_SUFFIX
from .events import ChangeBus, ChangeEvent, Subscription
from .exceptions import BackendError
from .models import AuthSession

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Query = Callable[[AuthSession], Awaitable[list[Any]]]
Relevance = Callable[[ChangeEvent], bool]


class LocalProjectionStore(Generic[M]):
    """
    Session-scoped cached collection of ``model`` records.

    Cache entries are stored as ``{"data": [...], "timestamp": <epoch>}``
    under ``<prefix>_<user id>`` (or ``<prefix>_guest`` with no session).
    Overlapping refreshes are not serialized: whichever finishes last wins,
    since the backend stays the source of truth.
    """

    def __init__(
        self,
        cache: Any,
        key_prefix: str,
        model: type[M],
        query: Query,
        relevant: Relevance,
        *,
        session_scoped: bool = True,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.key_prefix = key_prefix
        self.model = model
        self.query = query
        self.relevant = relevant
        self.session_scoped = session_scoped
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._session: AuthSession | None = None
        self._items: list[M] = self._load(self.key)
        self._subscription: Subscription | None = None
        self._refresh_queued = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self.last_error: Exception | None = None

    # -------------------------------------------------------------------------
    # Keys and reads
    # -------------------------------------------------------------------------

    def key_for(self, session: AuthSession | None) -> str:
        if not self.session_scoped:
            return self.key_prefix
        suffix = session.user_id if session is not None else GUEST_KEY_SUFFIX
        return f"{self.key_prefix}_{suffix}"

    @property
    def key(self) -> str:
        return self.key_for(self._session)

    def get(self) -> list[M]:
        return list(self._items)

    @property
    def stale(self) -> bool:
        entry = self.cache.get(self.key)
        if not entry:
            return True
        return self._clock() - entry.get("timestamp", 0) > self.ttl_seconds

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def attach(self, bus: ChangeBus) -> Subscription:
        """Start listening for relevant change events."""
        if self._subscription is None or not self._subscription.active:
            self._subscription = bus.subscribe(self._on_event, name=f"projection:{self.key_prefix}")
        return self._subscription

    async def set_session(self, session: AuthSession | None) -> list[M]:
        """Switch to another session's key, serve its cached copy, then refresh."""
        self._session = session
        self._items = self._load(self.key)
        return await self.refresh(session)

    async def refresh(self, session: AuthSession | None = None) -> list[M]:
        """
        Re-query the collection for ``session`` and replace the cached value.

        A guest refresh stores an empty collection. On failure the previous
        (possibly stale) data is kept and the error recorded.
        """
        if session is None:
            session = self._session
        key = self.key_for(session)

        if session is None:
            items: list[M] = []
        else:
            try:
                rows = await self.query(session)
                items = [self.model.model_validate(row) for row in rows or []]
            except (BackendError, ValidationError) as e:
                self.last_error = e
                logger.error("Error fetching data for %s: %s", key, e)
                return self.get()

        self.last_error = None
        self.cache.set(
            key,
            {"data": [item.model_dump(mode="json") for item in items], "timestamp": self._clock()},
        )
        if key == self.key:
            self._items = items
        logger.debug("Refreshed %s (%d items)", key, len(items))
        return self.get()

    async def wait_idle(self) -> None:
        """Wait for every scheduled refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _on_event(self, event: ChangeEvent) -> None:
        if self._session is None or not self.relevant(event):
            return
        # Events published before the queued refresh starts share that refresh
        if self._refresh_queued:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running loop, skipping refresh of %s", self.key)
            return
        self._refresh_queued = True
        task = loop.create_task(self._run_queued_refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_queued_refresh(self) -> None:
        self._refresh_queued = False
        await self.refresh()

    def _load(self, key: str) -> list[M]:
        entry = self.cache.get(key)
        if not entry:
            return []
        try:
            return [self.model.model_validate(row) for row in entry.get("data", [])]
        except (ValidationError, AttributeError):
            logger.warning("Ignoring unreadable cache entry %s", key)
            return []
