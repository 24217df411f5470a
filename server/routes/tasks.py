"""
Task board endpoints.
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from core import Task
from core.permissions import Action, Resource, can
from core.models import TaskStatus

from ..requests import TaskStatusRequest
from ..state import require_service, require_session

logger = logging.getLogger(__name__)

router = APIRouter()


def _find_task(task_id: int, action: Action) -> Task:
    service, session = require_session()
    task = service.board.get(task_id)
    if task is None:
        logger.debug("Task not on board: %s", task_id)
        raise HTTPException(status_code=404, detail="Task not found")
    if not can(service.profiles.profile, action, Resource.TASK, task):
        logger.warning("%s may not %s task %s", session.user_id, action.value, task_id)
        raise HTTPException(status_code=403, detail=f"Not allowed to {action.value} this task")
    return task


@router.get("/tasks")
async def list_tasks(status: TaskStatus | None = Query(None)) -> list[Task]:
    """List the synced tasks, newest first."""
    tasks = require_service().board.tasks
    if status is not None:
        tasks = [t for t in tasks if t.status == status]
    return tasks


@router.patch("/task/{task_id}/status")
async def update_task_status(task_id: int, request: TaskStatusRequest) -> Task:
    """Change a task's status."""
    task = _find_task(task_id, Action.UPDATE)
    updated = await require_service().actions.update_status(task, request.status)
    if updated is None:
        raise HTTPException(status_code=400, detail="Could not update task status")
    return updated


@router.delete("/task/{task_id}")
async def delete_task(task_id: int) -> bool:
    """Delete a task."""
    task = _find_task(task_id, Action.DELETE)
    if not await require_service().actions.delete_task(task):
        raise HTTPException(
            status_code=403, detail="Could not delete task. You may not have permission."
        )
    return True


@router.post("/task/clear-cancelled")
async def clear_cancelled_tasks() -> dict:
    """Delete every cancelled task on the board."""
    service, _ = require_session()
    cancelled = [t for t in service.board.tasks if t.status == "cancelled"]
    if any(not can(service.profiles.profile, Action.DELETE, Resource.TASK, t) for t in cancelled):
        raise HTTPException(status_code=403, detail="Not allowed to delete every cancelled task")
    if cancelled and not await service.actions.clear_cancelled_tasks(cancelled):
        raise HTTPException(status_code=400, detail="Could not clear cancelled tasks")
    return {"cleared": len(cancelled)}
