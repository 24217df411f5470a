"""
Task board state and locally originated task writes.

TaskBoard is the in-memory task list a UI renders; it is patched in place
from ChangeBus events and reloaded on coarse invalidations. TaskActions issues
the user's writes, marks them with the EchoSuppressor before sending, and
announces the fresh denormalized result on the bus itself.
"""

import asyncio
import logging
from typing import Any, Iterable

from pydantic import ValidationError

from .constants import (
    ACTIVITY_LOGS,
    TASK_ATTACHMENTS,
    TASK_COMMENTS,
    TASK_SELECT,
    TASK_TIME_LOGS,
    TASKS,
)
from .echo import EchoSuppressor
from .events import (
    AddEvent,
    ChangeBus,
    ChangeEvent,
    DeleteManyEvent,
    DeleteManyPayload,
    Subscription,
    UpdateEvent,
    invalidate,
    task_deleted,
)
from .exceptions import BackendError, WriteError
from .models import AuthSession, Task, TaskStatus, TimeLog, now_iso
from .ports import Backend

logger = logging.getLogger(__name__)

# Invalidations of these tables change some task's denormalized form
TASK_TABLES = frozenset({TASKS, TASK_ATTACHMENTS, TASK_COMMENTS, TASK_TIME_LOGS})


# =============================================================================
# Task Board
# =============================================================================


class TaskBoard:
    """In-memory list of denormalized tasks, newest first."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend
        self._tasks: list[Task] = []
        self._session: AuthSession | None = None
        self._subscription: Subscription | None = None
        self._reload_queued = False
        self._pending: set[asyncio.Task[Any]] = set()
        self.loading = False

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: int) -> Task | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    def counts(self) -> dict[str, int]:
        counts = {"todo": 0, "inprogress": 0, "done": 0}
        for task in self._tasks:
            if task.status in counts:
                counts[task.status] += 1
        return counts

    def attach(self, bus: ChangeBus) -> Subscription:
        if self._subscription is None or not self._subscription.active:
            self._subscription = bus.subscribe(self.apply, name="task_board")
        return self._subscription

    async def load(self, session: AuthSession | None = None) -> list[Task]:
        """Fetch every visible task. The most recently completed load wins."""
        if session is not None:
            self._session = session
        if self._session is None:
            self._tasks = []
            return []

        self.loading = True
        try:
            rows = await self.backend.select(TASKS, TASK_SELECT, order="created_at", descending=True)
            self._tasks = [Task.model_validate(row) for row in rows or []]
        except (BackendError, ValidationError) as e:
            logger.error("Error fetching all tasks: %s", e)
            self._tasks = []
        finally:
            self.loading = False
        return self.tasks

    def clear(self) -> None:
        self._session = None
        self._tasks = []

    def apply(self, event: ChangeEvent) -> None:
        """Patch the list from a ChangeBus event."""
        if isinstance(event, (AddEvent, UpdateEvent)):
            task = event.payload
            if isinstance(event, AddEvent) or self.get(task.id) is None:
                self._tasks = [task] + [t for t in self._tasks if t.id != task.id]
            else:
                self._tasks = [task if t.id == task.id else t for t in self._tasks]
        elif event.kind == "delete":
            self._remove({event.payload.id})
        elif event.kind == "delete_many":
            self._remove(set(event.payload.ids))
        elif event.kind == "batch_invalidate":
            if event.table is None or event.table in TASK_TABLES:
                self._queue_reload()

    async def wait_idle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._pending.clear()

    def _remove(self, ids: set[Any]) -> None:
        wanted = {str(i) for i in ids}
        self._tasks = [t for t in self._tasks if str(t.id) not in wanted]

    def _queue_reload(self) -> None:
        if self._session is None or self._reload_queued:
            return
        self._reload_queued = True
        task = asyncio.get_running_loop().create_task(self._reload())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _reload(self) -> None:
        self._reload_queued = False
        await self.load()


# =============================================================================
# Task Actions
# =============================================================================


class TaskActions:
    """User-initiated task writes."""

    def __init__(self, backend: Backend, bus: ChangeBus, suppressor: EchoSuppressor) -> None:
        self.backend = backend
        self.bus = bus
        self.suppressor = suppressor
        self.session: AuthSession | None = None
        self.active_timer: TimeLog | None = None

    async def log_activity(self, action: str, details: dict[str, Any]) -> None:
        """Append an activity entry. Failures are logged only."""
        if self.session is None:
            return
        try:
            await self.backend.insert(
                ACTIVITY_LOGS,
                {
                    "user_id": self.session.user_id,
                    "action": action,
                    "details": details,
                    "task_id": details.get("task_id"),
                },
                returning=None,
            )
        except BackendError as e:
            logger.error("Error logging activity: %s", e.message)

    async def update_status(self, task: Task, status: TaskStatus) -> Task | None:
        """
        Change a task's status.

        The resulting push echo is suppressed; the board is updated from the
        row returned by the write instead.
        """
        self.suppressor.mark_pending(TASKS, task.id)
        try:
            row = await self.backend.update(
                TASKS, {"status": status}, filters={"id": task.id}, returning=TASK_SELECT, single=True
            )
            updated = Task.model_validate(row)
        except (BackendError, ValidationError) as e:
            self.suppressor.discard(TASKS, task.id)
            logger.error("Error updating task status: %s", e)
            return None

        await self.log_activity(
            "status_changed",
            {"task_id": task.id, "task_title": task.title, "from": task.status, "to": status},
        )
        self.bus.publish(UpdateEvent(payload=updated))
        logger.info("Task %s status updated to %s", task.id, status)
        return updated

    async def save_task(
        self,
        data: dict[str, Any],
        editing: Task | None = None,
        new_comments: Iterable[str] = (),
        deleted_attachment_ids: Iterable[int] = (),
    ) -> bool:
        """
        Create or update a task with its comments and attachment removals.

        Returns:
            True if the task was saved and announced
        """
        if self.session is None:
            return False
        if not data.get("user_id"):
            logger.error("Assignee is required.")
            return False

        is_new = editing is None
        new_comments = list(new_comments)
        deleted_attachment_ids = list(deleted_attachment_ids)

        try:
            if is_new:
                values = {**data, "created_by": self.session.user_id}
                saved = await self.backend.insert(TASKS, values, returning=TASK_SELECT, single=True)
            else:
                self.suppressor.mark_pending(TASKS, editing.id)
                saved = await self.backend.update(
                    TASKS, data, filters={"id": editing.id}, returning=TASK_SELECT, single=True
                )
            if not saved:
                raise WriteError("task", "Task could not be saved.")

            task_id, title = saved["id"], saved.get("title")

            if is_new and new_comments:
                comments = [
                    {"task_id": task_id, "user_id": self.session.user_id, "content": content}
                    for content in new_comments
                ]
                try:
                    await self.backend.insert(TASK_COMMENTS, comments, returning=None)
                except BackendError as e:
                    logger.error("Error saving comments for new task: %s", e.message)

            await self.log_activity(
                "created_task" if is_new else "updated_task", {"task_id": task_id, "task_title": title}
            )

            if deleted_attachment_ids:
                await self.backend.delete(TASK_ATTACHMENTS, filters={"id": deleted_attachment_ids})
                await self.log_activity(
                    "removed_attachments",
                    {"task_id": task_id, "task_title": title, "count": len(deleted_attachment_ids)},
                )

            final = await self.backend.select(TASKS, TASK_SELECT, filters={"id": task_id}, single=True)
            task = Task.model_validate(final)
        except (BackendError, WriteError, ValidationError) as e:
            if not is_new:
                self.suppressor.discard(TASKS, editing.id)
            logger.error("Error in save task process: %s", e)
            return False

        self.bus.publish(AddEvent(payload=task) if is_new else UpdateEvent(payload=task))
        logger.info("Task %s %s", task.id, "created" if is_new else "updated")
        return True

    async def delete_task(self, task: Task) -> bool:
        try:
            await self.log_activity("deleted_task", {"task_id": task.id, "task_title": task.title})
            rows = await self.backend.delete(TASKS, filters={"id": task.id}, returning="*")
        except BackendError as e:
            logger.error("Error deleting task: %s", e.message)
            return False

        if not rows:
            logger.error("Could not delete task %s. You may not have permission.", task.id)
            return False

        if self.active_timer is not None and self.active_timer.task_id == task.id:
            self.active_timer = None
        self.bus.publish(task_deleted(task.id))
        logger.info("Task %s deleted", task.id)
        return True

    async def clear_cancelled_tasks(self, tasks: Iterable[Task]) -> bool:
        task_ids = [t.id for t in tasks]
        if not task_ids:
            return False
        try:
            await self.log_activity("cleared_cancelled_tasks", {"count": len(task_ids)})
            await self.backend.delete(TASKS, filters={"id": task_ids})
        except BackendError as e:
            logger.error("Error clearing cancelled tasks: %s", e.message)
            return False

        if self.active_timer is not None and self.active_timer.task_id in task_ids:
            self.active_timer = None
        self.bus.publish(DeleteManyEvent(payload=DeleteManyPayload(ids=task_ids)))
        logger.info("Cleared %d cancelled task(s)", len(task_ids))
        return True

    async def start_timer(self, task: Task) -> TimeLog | None:
        if self.session is None or self.active_timer is not None:
            return None
        try:
            row = await self.backend.insert(
                TASK_TIME_LOGS,
                {"task_id": task.id, "user_id": self.session.user_id, "start_time": now_iso()},
                single=True,
            )
            self.active_timer = TimeLog.model_validate(row)
        except (BackendError, ValidationError) as e:
            logger.error("Error starting timer: %s", e)
            return None
        self.bus.publish(invalidate(TASK_TIME_LOGS))
        return self.active_timer

    async def stop_timer(self) -> bool:
        timer = self.active_timer
        if timer is None:
            return False
        try:
            await self.backend.update(
                TASK_TIME_LOGS, {"end_time": now_iso()}, filters={"id": timer.id}, returning=None
            )
        except BackendError as e:
            logger.error("Error stopping timer: %s", e.message)
            return False
        self.active_timer = None
        self.bus.publish(invalidate(TASK_TIME_LOGS))
        return True
