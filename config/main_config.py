"""Main Config model and its sections."""

from pathlib import Path

from pydantic import BaseModel, Field

from .defaults import (
    CACHE_TTL_SECONDS,
    CONFIG_DIR_NAME,
    DEFAULT_BACKEND_TIMEOUT,
    DEFAULT_BACKEND_URL,
    DEFAULT_HEARTBEAT_SECONDS,
    DEFAULT_MAX_BACKOFF_SECONDS,
    ECHO_GRACE_SECONDS,
    ECHO_SWEEP_SECONDS,
)


class BackendConfig(BaseModel):
    """Connection to the remote relational backend."""

    url: str = Field(default=DEFAULT_BACKEND_URL, description="Backend base URL")
    anon_key: str = Field(default="", description="Public API key sent with every request")
    timeout: float = Field(default=DEFAULT_BACKEND_TIMEOUT, description="REST timeout in seconds")

    @property
    def configured(self) -> bool:
        return bool(self.url and self.anon_key)


class RealtimeConfig(BaseModel):
    heartbeat_seconds: float = Field(default=DEFAULT_HEARTBEAT_SECONDS, gt=0)
    max_backoff_seconds: float = Field(default=DEFAULT_MAX_BACKOFF_SECONDS, gt=0)


class SyncConfig(BaseModel):
    echo_grace_seconds: float = Field(
        default=ECHO_GRACE_SECONDS,
        gt=0,
        description="How long a pending local write waits for its echo",
    )
    echo_sweep_seconds: float = Field(default=ECHO_SWEEP_SECONDS, gt=0)


class CacheConfig(BaseModel):
    directory: Path = Field(
        default_factory=lambda: Path.home() / CONFIG_DIR_NAME / "cache",
        description="Where projection caches are persisted",
    )
    ttl_seconds: float = Field(default=CACHE_TTL_SECONDS, gt=0)


class Config(BaseModel):
    """Main configuration model."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
