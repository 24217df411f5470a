"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete adapters so the backend,
the realtime transport, the toast surface and the persisted cache can be
swapped for in-memory fakes in tests.
"""

import logging
from typing import Any, Callable, Iterable, Literal, Mapping, Protocol

Row = dict[str, Any]
Filters = Mapping[str, Any]
# Column -> value means equality; a list, tuple or set of values means membership.

Severity = Literal["success", "error", "info", "warning"]

RawChangeCallback = Callable[[dict[str, Any]], None]
# Receives {"eventType": "INSERT" | "UPDATE" | "DELETE", "table": ..., "new": {...}, "old": {...}}


class Backend(Protocol):
    """Row-level CRUD against the remote relational backend. Errors raise BackendError."""

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        single: bool = False,
    ) -> Any: ...

    async def insert(
        self,
        table: str,
        rows: Row | Iterable[Row],
        *,
        returning: str | None = "*",
        single: bool = False,
    ) -> Any: ...

    async def update(
        self,
        table: str,
        values: Row,
        *,
        filters: Filters,
        returning: str | None = "*",
        single: bool = False,
    ) -> Any: ...

    async def delete(
        self,
        table: str,
        *,
        filters: Filters,
        returning: str | None = None,
    ) -> list[Row]: ...

    async def count(self, table: str, *, filters: Filters | None = None) -> int: ...


class RealtimeTransport(Protocol):
    """Push-based change feed keyed by (table, event-type wildcard)."""

    async def subscribe(
        self,
        table: str,
        callback: RawChangeCallback,
        *,
        event: str = "*",
        filter: str | None = None,
    ) -> Any: ...

    async def unsubscribe(self, channel: Any) -> None: ...


class Notifier(Protocol):
    """Toast surface. Fire-and-forget."""

    def notify(self, message: str, severity: Severity) -> None: ...


class KeyValueCache(Protocol):
    """Persisted cache that survives restarts."""

    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> None: ...


_SEVERITY_LEVELS = {"error": logging.ERROR, "warning": logging.WARNING}


class LoggingNotifier:
    """Notifier that only writes toasts to the log."""

    def __init__(self, logger_name: str = "taskboard.toast") -> None:
        self._logger = logging.getLogger(logger_name)

    def notify(self, message: str, severity: Severity) -> None:
        level = _SEVERITY_LEVELS.get(severity, logging.INFO)
        self._logger.log(level, "[%s] %s", severity, message)
