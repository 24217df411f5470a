"""Default configuration values."""

from core.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_ECHO_GRACE_SECONDS,
    DEFAULT_ECHO_SWEEP_SECONDS,
)

CONFIG_DIR_NAME = ".taskboard"
CONFIG_FILENAMES = ("taskboard.jsonc", "taskboard.json")

# Backend
DEFAULT_BACKEND_URL = "http://localhost:54321"
DEFAULT_BACKEND_TIMEOUT = 10.0  # seconds per REST call

# Realtime
DEFAULT_HEARTBEAT_SECONDS = 25.0
DEFAULT_MAX_BACKOFF_SECONDS = 30.0

# Sync / cache (shared with the core)
ECHO_GRACE_SECONDS = DEFAULT_ECHO_GRACE_SECONDS
ECHO_SWEEP_SECONDS = DEFAULT_ECHO_SWEEP_SECONDS
CACHE_TTL_SECONDS = DEFAULT_CACHE_TTL_SECONDS

# Environment overrides
ENV_BACKEND_URL = "SUPABASE_URL"
ENV_BACKEND_KEY = "SUPABASE_ANON_KEY"
ENV_CACHE_DIR = "TASKBOARD_CACHE_DIR"
