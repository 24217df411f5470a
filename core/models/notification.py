"""Notification model."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationType = Literal[
    "new_task_assigned", "new_comment", "new_project_created", "new_user_registered"
]


class Notification(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    user_id: str
    actor_id: str | None = None
    type: NotificationType
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: str | None = None
