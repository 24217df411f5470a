"""
Health check endpoint.
"""

from fastapi import APIRouter

from ..state import get_service


router = APIRouter()


@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    service = get_service()
    session = service.session if service is not None else None
    return {
        "status": "ok",
        "sync_configured": service is not None,
        "user_id": session.user_id if session is not None else None,
        "feed_active": service is not None and service.feed.active,
    }
