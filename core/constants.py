"""
Core constants for the sync subsystem.

Table names, join expressions and timing defaults shared across modules.
"""

# Watched tables
TASKS = "tasks"
TASK_ATTACHMENTS = "task_attachments"
TASK_COMMENTS = "task_comments"
PROJECTS = "projects"
PROJECT_MEMBERS = "project_members"
PROFILES = "profiles"

WATCHED_TABLES = (TASKS, TASK_ATTACHMENTS, TASK_COMMENTS, PROJECTS, PROJECT_MEMBERS, PROFILES)

# Tables written by the client but never watched as a group
NOTIFICATIONS = "notifications"
ACTIVITY_LOGS = "activity_logs"
TASK_TIME_LOGS = "task_time_logs"

# Denormalized task read: assignee, creator, project, attachments, time logs, comments with authors
TASK_SELECT = (
    "*, assignee:user_id(*), creator:created_by(*), projects(*), "
    "task_attachments(*), task_time_logs(*), task_comments(*, profiles(*))"
)
USER_PROJECTS_SELECT = "*, projects!inner(*)"

# Echo suppression
DEFAULT_ECHO_GRACE_SECONDS = 5.0  # pending local writes expire after this window
DEFAULT_ECHO_SWEEP_SECONDS = 30.0

# Projection cache
DEFAULT_CACHE_TTL_SECONDS = 5 * 60
USER_PROJECTS_KEY_PREFIX = "user_projects"
ALL_USERS_KEY = "all_users"
GUEST_KEY_SUFFIX = "guest"

# PostgREST "no rows returned" code for single-row reads
NO_ROWS_CODE = "PGRST116"

IDLE_REFRESH_REASON = "idle_refresh"
