"""
Sync service.

Composition root of the realtime sync subsystem. Owns one ChangeBus and one
EchoSuppressor per service instance and drives every component's lifecycle
from session start to session end.
"""

import asyncio
import logging
from typing import Callable

from .constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_ECHO_GRACE_SECONDS,
    DEFAULT_ECHO_SWEEP_SECONDS,
    IDLE_REFRESH_REASON,
    PROJECT_MEMBERS,
    PROJECTS,
    USER_PROJECTS_KEY_PREFIX,
    USER_PROJECTS_SELECT,
)
from .echo import EchoSuppressor
from .events import ChangeBus, ChangeEvent, invalidate
from .exceptions import InvalidOperationError
from .feed import ChangeFeedSubscriber
from .models import AuthSession, ProjectMember
from .notifications import NotificationInbox
from .ports import Backend, KeyValueCache, LoggingNotifier, Notifier, RealtimeTransport
from .profiles import ProfileDirectory
from .projections import LocalProjectionStore
from .projects import ProjectSaveCoordinator, ProjectSaveRequest, SaveOutcome
from .tasks import TaskActions, TaskBoard

logger = logging.getLogger(__name__)

IDLE_REFRESH_MESSAGE = "Data refreshed"


def _affects_user_projects(event: ChangeEvent) -> bool:
    return event.kind == "batch_invalidate" and event.table in (PROJECTS, PROJECT_MEMBERS, None)


class SyncService:
    """Wires the feed, the bus consumers and the save coordinator together."""

    def __init__(
        self,
        backend: Backend,
        transport: RealtimeTransport,
        cache: KeyValueCache,
        notifier: Notifier | None = None,
        *,
        echo_grace_seconds: float = DEFAULT_ECHO_GRACE_SECONDS,
        echo_sweep_seconds: float = DEFAULT_ECHO_SWEEP_SECONDS,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
    ) -> None:
        self.backend = backend
        self.transport = transport
        self.notifier = notifier or LoggingNotifier()
        self.echo_sweep_seconds = echo_sweep_seconds

        self.bus = ChangeBus()
        self.suppressor = EchoSuppressor(grace_seconds=echo_grace_seconds)
        self.feed = ChangeFeedSubscriber(transport, backend, self.bus, self.suppressor)
        self.board = TaskBoard(backend)
        self.actions = TaskActions(backend, self.bus, self.suppressor)
        self.profiles = ProfileDirectory(backend, cache, ttl_seconds=cache_ttl_seconds)
        self.user_projects: LocalProjectionStore[ProjectMember] = LocalProjectionStore(
            cache,
            USER_PROJECTS_KEY_PREFIX,
            ProjectMember,
            self._query_user_projects,
            _affects_user_projects,
            ttl_seconds=cache_ttl_seconds,
        )
        self.inbox = NotificationInbox(backend, transport)
        self.projects = ProjectSaveCoordinator(backend, self.bus, self.notifier, self.suppressor)

        self.session: AuthSession | None = None
        self._sweeper: asyncio.Task[None] | None = None

    async def start_session(self, session: AuthSession) -> None:
        """Load the user's views and open the change feed."""
        if self.session is not None:
            await self.end_session()

        logger.info("Starting session for %s", session.user_id)
        self.session = session
        self.actions.session = session

        self.board.attach(self.bus)
        self.profiles.attach(self.bus)
        self.user_projects.attach(self.bus)

        await self.profiles.start(session)
        await self.user_projects.set_session(session)
        await self.board.load(session)
        await self.inbox.start(session)
        await self.feed.start(session)

        self._sweeper = asyncio.create_task(
            self.suppressor.run_sweeper(self.echo_sweep_seconds), name="echo-sweeper"
        )

    async def end_session(self) -> None:
        """Tear every subscription down and fall back to the guest views."""
        if self.session is None:
            return
        logger.info("Ending session for %s", self.session.user_id)

        await self.feed.stop()
        await self.inbox.stop()
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None

        await self.board.close()
        self.board.clear()
        await self.profiles.stop()
        await self.profiles.close()
        await self.user_projects.set_session(None)
        await self.user_projects.close()

        self.suppressor.clear()
        self.actions.session = None
        self.actions.active_timer = None
        self.session = None

        leaked = self.feed.open_handles
        if leaked:
            logger.error("Feed handles left open after session end: %s", leaked)
            raise InvalidOperationError(f"Feed handles left open after session end: {leaked}")

    async def save_project(
        self, request: ProjectSaveRequest, on_close: Callable[[], None] | None = None
    ) -> SaveOutcome:
        actor = self.profiles.profile
        if actor is None:
            raise InvalidOperationError("No profile loaded for the current session")
        return await self.projects.save(request, actor, on_close=on_close)

    def idle_refresh(self) -> None:
        """Ask every view to re-derive itself after the user went idle."""
        if self.session is None:
            return
        logger.info("User is idle. Refreshing data in the background...")
        self.bus.publish(invalidate(reason=IDLE_REFRESH_REASON))
        self.notifier.notify(IDLE_REFRESH_MESSAGE, "info")

    async def wait_idle(self) -> None:
        """Wait for queued feed events and the refreshes they triggered."""
        await self.feed.join()
        await self.board.wait_idle()
        await self.user_projects.wait_idle()
        await self.profiles.users.wait_idle()

    async def _query_user_projects(self, session: AuthSession) -> list[dict]:
        return await self.backend.select(
            PROJECT_MEMBERS,
            USER_PROJECTS_SELECT,
            filters={"user_id": session.user_id},
            order="created_at",
            descending=True,
        )
