"""
Profile and user directory endpoints.
"""

from fastapi import APIRouter, HTTPException

from core import Profile

from ..state import require_service, require_session


router = APIRouter()


@router.get("/profile")
async def get_profile() -> Profile:
    """The signed-in user's profile."""
    service, _ = require_session()
    if service.profiles.profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return service.profiles.profile


@router.get("/users")
async def list_users() -> list[Profile]:
    return require_service().profiles.users.get()
