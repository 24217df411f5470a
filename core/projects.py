"""
Project save coordination.

Saving a project touches several tables (the project row, its membership
roster, notifications for admins) and the backend offers no multi-table
transaction to the client. The coordinator runs the steps strictly in
sequence, aborts only when later steps cannot run without the project id,
and reports every other failure as a warning without rolling anything back.
A failed membership call is not retried.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel, Field, ValidationError

from .constants import NOTIFICATIONS, PROFILES, PROJECT_MEMBERS, PROJECTS
from .echo import EchoSuppressor
from .events import ChangeBus, invalidate
from .exceptions import BackendError, CoreError, PermissionDeniedError, WriteError
from .models import MemberDetails, Profile, Project
from .permissions import can_edit_project_metadata
from .ports import Backend, Notifier

logger = logging.getLogger(__name__)

PERMISSION_MESSAGE = "Project could not be saved. You may not have permissions."
CREATOR_MEMBERSHIP_MESSAGE = "Project created, but failed to add creator as member."


class ProjectSaveRequest(BaseModel):
    """Input of a project save; ``target_project`` is None when creating."""

    name: str
    color: str | None = None
    updated_members: list[MemberDetails] = Field(default_factory=list)
    original_members: list[MemberDetails] = Field(default_factory=list)
    target_project: Project | None = None

    @property
    def is_new(self) -> bool:
        return self.target_project is None

    def member_diff(self) -> tuple[list[str], list[str]]:
        """Return ``(to_add, to_remove)`` user ids by set difference."""
        original = {m.user_id for m in self.original_members}
        updated = {m.user_id for m in self.updated_members}
        to_add = sorted(updated - original)
        to_remove = sorted(original - updated)
        return to_add, to_remove


@dataclass
class SaveOutcome:
    project: Project | None
    created: bool
    warnings: list[WriteError] = field(default_factory=list)
    error: CoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProjectSaveCoordinator:
    """Best-effort multi-step project save."""

    def __init__(
        self,
        backend: Backend,
        bus: ChangeBus,
        notifier: Notifier,
        suppressor: EchoSuppressor,
    ) -> None:
        self.backend = backend
        self.bus = bus
        self.notifier = notifier
        self.suppressor = suppressor

    async def save(
        self,
        request: ProjectSaveRequest,
        actor: Profile,
        on_close: Callable[[], None] | None = None,
    ) -> SaveOutcome:
        """
        Save a project with its membership changes.

        Args:
            request: Name, color, rosters and the project being edited (if any)
            actor: The acting user's profile
            on_close: Called once the save completed, to close the editing surface

        Returns:
            SaveOutcome with the resolved project, per-step warnings and, for
            aborted saves, the fatal error
        """
        is_new = request.is_new
        project = request.target_project

        # Step 1: project row (admins only)
        if can_edit_project_metadata(actor):
            try:
                project = await self._write_project(request, actor)
            except WriteError as e:
                self.notifier.notify(e.message, "error")
                return SaveOutcome(project=None, created=is_new, error=e)

        # Step 2: everything below needs a project id
        if project is None:
            self.notifier.notify(PERMISSION_MESSAGE, "error")
            return SaveOutcome(
                project=None, created=is_new, error=PermissionDeniedError(PERMISSION_MESSAGE)
            )

        outcome = SaveOutcome(project=project, created=is_new)

        if is_new:
            await self._add_creator(project, actor, outcome)
            await self._notify_admins(project, request.name, actor)
        else:
            await self._apply_member_diff(project, request, outcome)

        self.notifier.notify(f"Project {'created' if is_new else 'updated'} successfully", "success")
        if on_close is not None:
            on_close()
        self.bus.publish(invalidate(PROJECTS))

        logger.info(
            "Project %s %s with %d warning(s)",
            project.id,
            "created" if is_new else "updated",
            len(outcome.warnings),
        )
        return outcome

    async def _write_project(self, request: ProjectSaveRequest, actor: Profile) -> Project | None:
        values: dict = {"name": request.name, "color": request.color}
        target = request.target_project
        try:
            if target is None:
                values["created_by"] = actor.id
                row = await self.backend.insert(PROJECTS, values, single=True)
            else:
                self.suppressor.mark_pending(PROJECTS, target.id)
                row = await self.backend.update(
                    PROJECTS, values, filters={"id": target.id}, single=True
                )
        except BackendError as e:
            if target is not None:
                self.suppressor.discard(PROJECTS, target.id)
            raise WriteError("project", e.message) from e

        if not row:
            return None
        try:
            return Project.model_validate(row)
        except ValidationError as e:
            raise WriteError("project", f"Unexpected project row: {e}") from e

    async def _apply_member_diff(
        self, project: Project, request: ProjectSaveRequest, outcome: SaveOutcome
    ) -> None:
        to_add, to_remove = request.member_diff()

        if to_remove:
            try:
                await self.backend.delete(
                    PROJECT_MEMBERS, filters={"project_id": project.id, "user_id": to_remove}
                )
            except BackendError as e:
                self._warn(outcome, "remove_members", f"Error removing members: {e.message}")

        if to_add:
            rows = [{"project_id": project.id, "user_id": user_id} for user_id in to_add]
            try:
                await self.backend.insert(PROJECT_MEMBERS, rows, returning=None)
            except BackendError as e:
                self._warn(outcome, "add_members", f"Error adding members: {e.message}")

    async def _add_creator(self, project: Project, actor: Profile, outcome: SaveOutcome) -> None:
        try:
            await self.backend.insert(
                PROJECT_MEMBERS, {"project_id": project.id, "user_id": actor.id}, returning=None
            )
        except BackendError as e:
            logger.warning("Could not add creator to project %s: %s", project.id, e.message)
            self._warn(outcome, "add_creator", CREATOR_MEMBERSHIP_MESSAGE)

    async def _notify_admins(self, project: Project, name: str, actor: Profile) -> None:
        """Secondary effect: failures are logged only."""
        try:
            admins = await self.backend.select(PROFILES, "id", filters={"role": "admin"})
        except BackendError as e:
            logger.error("Could not fetch admins to notify: %s", e.message)
            return

        notifications = [
            {
                "user_id": admin["id"],
                "actor_id": actor.id,
                "type": "new_project_created",
                "data": {
                    "project_id": project.id,
                    "project_name": name,
                    "creator_name": actor.full_name,
                },
            }
            for admin in admins or []
            if admin.get("id") != actor.id
        ]
        if not notifications:
            return
        try:
            await self.backend.insert(NOTIFICATIONS, notifications, returning=None)
        except BackendError as e:
            logger.error("Failed to create project notifications: %s", e.message)

    def _warn(self, outcome: SaveOutcome, step: str, message: str) -> None:
        outcome.warnings.append(WriteError(step, message))
        self.notifier.notify(message, "error")
