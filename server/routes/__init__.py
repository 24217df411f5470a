"""
Route registration for the sync API.
"""

from fastapi import FastAPI

from . import events, health, notifications, profile, projects, refresh, session, tasks


def register_routes(app: FastAPI) -> None:
    """Register all routes with the FastAPI application."""
    app.include_router(health.router)
    app.include_router(session.router)
    app.include_router(tasks.router)
    app.include_router(projects.router)
    app.include_router(profile.router)
    app.include_router(notifications.router)
    app.include_router(refresh.router)
    app.include_router(events.router)
