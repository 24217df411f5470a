"""
Concrete adapters for the backend collaborator.

- RestBackend: row CRUD over the PostgREST HTTP API (httpx)
- RealtimeClient: push change feed over a Phoenix-channel websocket
- FileCache: persisted key-value cache for local projections
"""

from .cache import FileCache
from .realtime import Channel, RealtimeClient, realtime_url, to_raw_change
from .rest import RestBackend, encode_filters

__all__ = [
    "FileCache",
    "RealtimeClient",
    "Channel",
    "RestBackend",
    "encode_filters",
    "realtime_url",
    "to_raw_change",
]
