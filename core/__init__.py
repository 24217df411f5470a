"""
Core realtime sync package.

Transport-agnostic logic that keeps a client's view of the shared task
board in step with the backend: the change bus, echo suppression, the change
feed subscriber, projections and the multi-step save coordinator. The
backend package provides concrete adapters; the server package exposes the
resulting view state over HTTP/SSE.
"""

from .echo import EchoSuppressor
from .events import (
    AddEvent,
    BatchInvalidateEvent,
    ChangeBus,
    ChangeEvent,
    DeleteEvent,
    DeleteManyEvent,
    ProfileChangeEvent,
    Subscription,
    UpdateEvent,
    invalidate,
    parse_change_event,
    task_deleted,
)
from .exceptions import (
    BackendError,
    CoreError,
    FetchError,
    InvalidOperationError,
    PermissionDeniedError,
    TransportError,
    WriteError,
)
from .feed import ChangeFeedSubscriber, RawChange
from .models import (
    AuthSession,
    MemberDetails,
    Notification,
    Profile,
    Project,
    ProjectMember,
    Task,
    TaskAttachment,
    TaskComment,
    TimeLog,
)
from .notifications import NotificationInbox
from .profiles import ProfileDirectory
from .projections import LocalProjectionStore
from .projects import ProjectSaveCoordinator, ProjectSaveRequest, SaveOutcome
from .sync import SyncService
from .tasks import TaskActions, TaskBoard

__all__ = [
    # Exceptions
    "CoreError",
    "BackendError",
    "TransportError",
    "FetchError",
    "WriteError",
    "PermissionDeniedError",
    "InvalidOperationError",
    # Events
    "ChangeBus",
    "ChangeEvent",
    "Subscription",
    "AddEvent",
    "UpdateEvent",
    "DeleteEvent",
    "DeleteManyEvent",
    "BatchInvalidateEvent",
    "ProfileChangeEvent",
    "invalidate",
    "task_deleted",
    "parse_change_event",
    # Models
    "AuthSession",
    "Profile",
    "Project",
    "ProjectMember",
    "MemberDetails",
    "Task",
    "TaskAttachment",
    "TaskComment",
    "TimeLog",
    "Notification",
    # Components
    "EchoSuppressor",
    "ChangeFeedSubscriber",
    "RawChange",
    "LocalProjectionStore",
    "ProjectSaveCoordinator",
    "ProjectSaveRequest",
    "SaveOutcome",
    "TaskBoard",
    "TaskActions",
    "ProfileDirectory",
    "NotificationInbox",
    "SyncService",
]
