"""
HTTP request models for the API.

These are Pydantic models for validating and parsing API requests.
Project saves take core.ProjectSaveRequest directly.
"""

from .start_session_request import StartSessionRequest
from .task_status_request import TaskStatusRequest

__all__ = [
    "StartSessionRequest",
    "TaskStatusRequest",
]
