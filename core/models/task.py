"""Task model and its denormalized relations."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .profile import Profile
from .project import Project

TaskStatus = Literal["todo", "inprogress", "done", "cancelled"]
TaskPriority = Literal["low", "medium", "high"]


class TaskAttachment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    file_name: str
    file_path: str
    file_type: str | None = None
    file_size: int | None = None
    created_at: str | None = None


class TimeLog(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    task_id: int
    user_id: str
    start_time: str
    end_time: str | None = None


class TaskComment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    task_id: int
    user_id: str
    content: str
    created_at: str | None = None
    profiles: Profile | None = None


class Task(BaseModel):
    """
    Fully joined task as read from the backend.

    Instances are only ever built from a fresh denormalized read, never from
    a raw push payload.
    """

    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    description: str | None = None
    due_date: str | None = None
    user_id: str | None = None
    created_by: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    project_id: int | None = None
    assignee: Profile | None = None
    creator: Profile | None = None
    projects: Project | None = None
    task_attachments: list[TaskAttachment] = Field(default_factory=list)
    task_time_logs: list[TimeLog] = Field(default_factory=list)
    task_comments: list[TaskComment] = Field(default_factory=list)
