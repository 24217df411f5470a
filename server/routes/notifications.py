"""
Notification endpoints.
"""

from fastapi import APIRouter

from ..state import require_session


router = APIRouter()


@router.get("/notifications/unread")
async def unread_count() -> dict:
    service, _ = require_session()
    return {"unread": service.inbox.unread}


@router.post("/notifications/read")
async def mark_all_read() -> dict:
    """Mark every notification of the user as read."""
    service, _ = require_session()
    await service.inbox.mark_all_read()
    return {"unread": service.inbox.unread}
