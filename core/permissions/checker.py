"""Role-based permission checks."""

from typing import Any

from ..models import Profile

from .models import Action, Resource


def can(
    user: Profile | None,
    action: Action | str,
    resource: Resource | str,
    data: Any = None,
) -> bool:
    """
    Decide whether ``user`` may perform ``action`` on ``resource``.

    Args:
        user: The acting profile (None when signed out)
        action: Requested action
        resource: Targeted resource kind
        data: The targeted record when the rule depends on it
              (a Task for task rules, a Profile for user rules)

    Returns:
        True if allowed
    """
    if user is None:
        return False
    if user.role == "admin":
        return True

    action = Action(action)
    resource = Resource(resource)

    if resource is Resource.TASK:
        if action is Action.CREATE:
            return True
        if user.role == "manager":
            return True
        if action in (Action.UPDATE, Action.DELETE) and data is not None:
            return user.id in (_field(data, "user_id"), _field(data, "created_by"))

    if resource is Resource.USER:
        if action is Action.UPDATE and user.role == "manager":
            return _field(data, "role") == "employee"
        return False

    if resource is Resource.PROJECT:
        # Membership edits are enforced by the backend; this only gates the admin screens
        return action is Action.VIEW_ADMIN and user.role == "manager"

    return False


def can_edit_project_metadata(user: Profile | None) -> bool:
    """Only admins create projects or change their name and color."""
    return user is not None and user.role == "admin"


def _field(record: Any, name: str) -> Any:
    if record is None:
        return None
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)
