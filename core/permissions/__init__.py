"""
Permission checks for the task board.

Mirrors the row-level rules the backend enforces so the client can hide
actions a role cannot perform. The backend stays authoritative.
"""

from .checker import can, can_edit_project_metadata
from .models import Action, Resource

__all__ = [
    "Action",
    "Resource",
    "can",
    "can_edit_project_metadata",
]
