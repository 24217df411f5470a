"""
Idle refresh endpoint.
"""

from fastapi import APIRouter

from ..state import require_service


router = APIRouter()


@router.post("/refresh")
async def idle_refresh() -> dict:
    """Re-derive every view; called by clients after the user was idle."""
    service = require_service()
    service.idle_refresh()
    return {"refreshed": service.session is not None}
