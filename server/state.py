"""
Server-side state management.

Holds the SyncService built at startup so routes can reach it.
"""

from fastapi import HTTPException

from core import AuthSession, SyncService

_service: SyncService | None = None


def set_service(service: SyncService | None) -> None:
    """Set the sync service instance. Called from the application lifespan."""
    global _service
    _service = service


def get_service() -> SyncService | None:
    return _service


def require_service() -> SyncService:
    """Return the sync service or fail with 503 before startup completed."""
    if _service is None:
        raise HTTPException(status_code=503, detail="Sync service not configured")
    return _service


def require_session() -> tuple[SyncService, AuthSession]:
    """Return the service and its active session, or fail with 409."""
    service = require_service()
    if service.session is None:
        raise HTTPException(status_code=409, detail="No active session")
    return service, service.session
