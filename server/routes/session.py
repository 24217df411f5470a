"""
Session endpoints: start and end syncing for a signed-in user.
"""

import logging

from fastapi import APIRouter

from ..logging_config import log_timing
from ..requests import StartSessionRequest
from ..state import require_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/session")
async def start_session_route(request: StartSessionRequest) -> dict:
    """Load the user's views and open the change feed."""
    service = require_service()
    for adapter in (service.backend, service.transport):
        set_token = getattr(adapter, "set_access_token", None)
        if set_token is not None:
            set_token(request.access_token)

    with log_timing(logger, "Session start", logging.INFO):
        await service.start_session(request.to_session())
    return {"user_id": request.user_id, "profile": service.profiles.profile}


@router.delete("/session")
async def end_session_route() -> dict:
    """Tear down every subscription of the current session."""
    service = require_service()
    active = service.session is not None
    await service.end_session()
    return {"ended": active}
