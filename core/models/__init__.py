"""
Domain models for the task board.

Read models mirror the backend rows; relations are only populated by joined reads.
"""

from .auth_session import AuthSession
from .notification import Notification, NotificationType
from .profile import Profile, Role
from .project import MemberDetails, Project, ProjectMember
from .task import Task, TaskAttachment, TaskComment, TaskPriority, TaskStatus, TimeLog
from .utils import now_iso

__all__ = [
    # Utils
    "now_iso",
    # Session
    "AuthSession",
    # People
    "Profile",
    "Role",
    # Projects
    "Project",
    "ProjectMember",
    "MemberDetails",
    # Tasks
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskAttachment",
    "TaskComment",
    "TimeLog",
    # Notifications
    "Notification",
    "NotificationType",
]
