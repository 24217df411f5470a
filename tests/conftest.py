"""
Shared pytest fixtures for all tests.
"""
import tempfile
from pathlib import Path
from typing import Iterator

import pytest

from core import AuthSession, ChangeBus, EchoSuppressor, SyncService
from core.constants import PROFILES, TASKS

from fakes import (
    ADMIN_ID,
    EMPLOYEE_ID,
    EventRecorder,
    FakeBackend,
    FakeClock,
    FakeTransport,
    MemoryCache,
    RecordingNotifier,
    profile_row,
    task_row,
)


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    """Backend seeded with two users and two tasks."""
    return FakeBackend(
        {
            PROFILES: [
                profile_row(ADMIN_ID, "Ada Admin", "admin"),
                profile_row(EMPLOYEE_ID, "Erin Employee"),
            ],
            TASKS: [task_row(1, "Write docs"), task_row(2, "Fix bug", "inprogress")],
        }
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def bus(clock) -> Iterator[ChangeBus]:
    """A fresh ChangeBus; fails the test if a subscriber was left attached."""
    change_bus = ChangeBus(clock=clock)
    yield change_bus
    assert change_bus.open_subscriptions == [], "Leaked bus subscriptions"


@pytest.fixture
def recorder(bus) -> Iterator[EventRecorder]:
    events = EventRecorder()
    subscription = bus.subscribe(events, name="recorder")
    yield events
    subscription.close()


@pytest.fixture
def suppressor(clock) -> EchoSuppressor:
    return EchoSuppressor(grace_seconds=5.0, clock=clock)


@pytest.fixture
def admin_session() -> AuthSession:
    return AuthSession(user_id=ADMIN_ID, access_token="token-admin", email="ada@example.com")


@pytest.fixture
def employee_session() -> AuthSession:
    return AuthSession(user_id=EMPLOYEE_ID, access_token="token-employee")


@pytest.fixture
async def service(backend, transport, cache, notifier):
    """SyncService over the fakes; asserts nothing is left open after end_session."""
    sync = SyncService(backend, transport, cache, notifier, echo_grace_seconds=5.0)
    yield sync
    await sync.end_session()
    assert transport.open_channels == []
    assert sync.bus.open_subscriptions == []
    assert sync.feed.open_handles == []
