"""Permission system models."""

from enum import Enum


class Action(str, Enum):
    """Operation a user wants to perform."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VIEW_ADMIN = "view_admin"
    MANAGE_USERS = "manage_users"


class Resource(str, Enum):
    """Kind of record the operation targets."""

    TASK = "task"
    USER = "user"
    PROJECT = "project"
