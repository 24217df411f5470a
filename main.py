"""
Sync server entry point.
"""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from backend import FileCache, RealtimeClient, RestBackend
from config import get_config
from core import SyncService
from server import app, set_service
from server.event_bus import get_event_bus
from server.logging_config import setup_logging

# Initialize logging before anything else
setup_logging()
logger = logging.getLogger(__name__)

# Constants
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the adapters and the sync service, and tear them down on shutdown."""
    config = get_config()
    if not config.backend.configured:
        logger.warning("Backend URL or anon key missing; requests will be rejected")

    logger.info("Starting sync server")
    logger.info("Backend: %s", config.backend.url)
    logger.info("Cache directory: %s", config.cache.directory)

    backend = RestBackend(
        config.backend.url, config.backend.anon_key, timeout=config.backend.timeout
    )
    realtime = RealtimeClient(
        config.backend.url,
        config.backend.anon_key,
        heartbeat_seconds=config.realtime.heartbeat_seconds,
        max_backoff_seconds=config.realtime.max_backoff_seconds,
    )
    event_bus = get_event_bus()
    service = SyncService(
        backend,
        realtime,
        FileCache(config.cache.directory),
        event_bus,
        echo_grace_seconds=config.sync.echo_grace_seconds,
        echo_sweep_seconds=config.sync.echo_sweep_seconds,
        cache_ttl_seconds=config.cache.ttl_seconds,
    )
    event_bus.attach(service.bus)
    set_service(service)
    logger.info("Sync service ready")

    yield

    logger.info("Shutting down sync service...")
    await service.end_session()
    event_bus.detach()
    set_service(None)
    await realtime.close()
    await backend.aclose()
    logger.info("Sync service stopped")


app.router.lifespan_context = lifespan


def main() -> None:
    """Start the sync server."""
    host = os.environ.get("HOST", DEFAULT_HOST)
    port = int(os.environ.get("PORT", str(DEFAULT_PORT)))

    logger.info("Server listening on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
