"""
FastAPI application for the task board sync server.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import BackendError, CoreError
from server.middleware import RequestLoggingMiddleware

logger = logging.getLogger(__name__)

API_TITLE = "Task Board Sync API"
API_VERSION = "1.0.0"

CORS_ORIGINS_ENV = "CORS_ORIGINS"
ALLOW_ALL = "*"


def parse_cors_origins(value: str | None) -> list[str]:
    """Split a comma-separated origin list; empty or ``*`` allows every origin."""
    if not value or value.strip() == ALLOW_ALL:
        return [ALLOW_ALL]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


app = FastAPI(title=API_TITLE, version=API_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_cors_origins(os.environ.get(CORS_ORIGINS_ENV)),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added after CORS so it wraps every request
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    logger.error("Backend rejected %s %s: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=502, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
    logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})
