"""
Current profile and the directory of all users.

The signed-in user's own profile is replaced directly from ``profile_change``
events; the all-users list is a projection refreshed on profile invalidations.
"""

import logging

from pydantic import ValidationError

from .constants import ALL_USERS_KEY, NO_ROWS_CODE, PROFILES
from .events import ChangeBus, ChangeEvent, Subscription
from .exceptions import BackendError
from .models import AuthSession, Profile, now_iso
from .ports import Backend, KeyValueCache
from .projections import LocalProjectionStore

logger = logging.getLogger(__name__)


def _affects_users(event: ChangeEvent) -> bool:
    if event.kind == "profile_change":
        return True
    return event.kind == "batch_invalidate" and event.table in (PROFILES, None)


class ProfileDirectory:
    def __init__(self, backend: Backend, cache: KeyValueCache, ttl_seconds: float) -> None:
        self.backend = backend
        self.profile: Profile | None = None
        self.users: LocalProjectionStore[Profile] = LocalProjectionStore(
            cache,
            ALL_USERS_KEY,
            Profile,
            self._query_users,
            _affects_users,
            session_scoped=False,
            ttl_seconds=ttl_seconds,
        )
        self._session: AuthSession | None = None
        self._subscription: Subscription | None = None

    def attach(self, bus: ChangeBus) -> list[Subscription]:
        if self._subscription is None or not self._subscription.active:
            self._subscription = bus.subscribe(self._on_event, name="profile_directory")
        return [self._subscription, self.users.attach(bus)]

    async def start(self, session: AuthSession) -> Profile | None:
        self._session = session
        if self.profile is None or self.profile.id != session.user_id:
            self.profile = await self.load_profile(session)
        await self.users.set_session(session)
        await self.touch_last_active()
        return self.profile

    async def stop(self) -> None:
        self._session = None
        self.profile = None
        await self.users.set_session(None)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        await self.users.close()

    async def load_profile(self, session: AuthSession) -> Profile | None:
        """Fetch the user's profile, creating it on first sign-in."""
        try:
            try:
                row = await self.backend.select(
                    PROFILES, filters={"id": session.user_id}, single=True
                )
            except BackendError as e:
                if e.code != NO_ROWS_CODE:
                    raise
                row = None

            if not row:
                row = await self.backend.insert(
                    PROFILES,
                    {
                        "id": session.user_id,
                        "full_name": session.full_name or session.email,
                        "email": session.email,
                    },
                    single=True,
                )
                logger.info("Created profile for %s", session.user_id)
            return Profile.model_validate(row)
        except (BackendError, ValidationError) as e:
            logger.error("Error fetching or creating profile: %s", e)
            return None

    async def touch_last_active(self) -> None:
        """Heartbeat: record the user as active now. Failures are logged only."""
        if self._session is None:
            return
        try:
            await self.backend.update(
                PROFILES,
                {"last_sign_in_at": now_iso()},
                filters={"id": self._session.user_id},
                returning=None,
            )
        except BackendError as e:
            logger.error("Failed to update last active timestamp: %s", e.message)

    def _on_event(self, event: ChangeEvent) -> None:
        if event.kind == "profile_change":
            self.profile = event.payload

    async def _query_users(self, session: AuthSession) -> list[dict]:
        return await self.backend.select(PROFILES, order="full_name")
