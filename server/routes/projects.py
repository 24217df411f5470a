"""
Project endpoints.
"""

from fastapi import APIRouter, HTTPException

from core import InvalidOperationError, PermissionDeniedError, ProjectMember, ProjectSaveRequest

from ..state import require_service, require_session


router = APIRouter()


@router.get("/projects/mine")
async def my_projects() -> list[ProjectMember]:
    """Memberships of the current user, each with its project joined."""
    return require_service().user_projects.get()


@router.put("/project")
async def save_project(request: ProjectSaveRequest) -> dict:
    """
    Create or update a project and its membership roster.

    Partial failures are reported under ``warnings``; only a save that
    produced no project is an error.
    """
    service, _ = require_session()
    try:
        outcome = await service.save_project(request)
    except InvalidOperationError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if outcome.error is not None:
        status_code = 403 if isinstance(outcome.error, PermissionDeniedError) else 400
        raise HTTPException(status_code=status_code, detail=str(outcome.error))

    return {
        "project": outcome.project,
        "created": outcome.created,
        "warnings": [{"step": w.step, "message": w.message} for w in outcome.warnings],
    }
