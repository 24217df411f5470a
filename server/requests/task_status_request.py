"""TaskStatusRequest model."""

from pydantic import BaseModel

from core.models import TaskStatus


class TaskStatusRequest(BaseModel):
    status: TaskStatus
