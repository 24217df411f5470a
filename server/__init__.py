"""
Task board sync API server.

Exposes the synced views of a SyncService over HTTP and streams change
events and toasts over SSE.
"""

from .app import app
from .routes import register_routes
from .state import get_service, set_service

# Register all routes with the app
register_routes(app)

__all__ = ["app", "get_service", "set_service"]
