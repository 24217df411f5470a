"""
Realtime change-feed client.

Speaks the Phoenix channel protocol used by the backend's realtime server
over a websocket: one channel per (table, event, filter) subscription, a
periodic heartbeat, and reconnect with exponential backoff that rejoins
every open channel. Connection problems are logged and retried here and
never surface to callers.
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from core.exceptions import TransportError
from core.ports import RawChangeCallback

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0.0"
DEFAULT_HEARTBEAT_SECONDS = 25.0
DEFAULT_MAX_BACKOFF_SECONDS = 30.0
INITIAL_BACKOFF_SECONDS = 1.0
BACKOFF_FACTOR = 2.0


def realtime_url(url: str, anon_key: str) -> str:
    """Build the websocket endpoint from the backend's base URL."""
    base = url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/realtime/v1/websocket?apikey={anon_key}&vsn={PROTOCOL_VERSION}"


def to_raw_change(data: dict[str, Any]) -> dict[str, Any]:
    """Translate a ``postgres_changes`` data block into ``{eventType, table, new, old}``."""
    return {
        "eventType": data.get("type") or data.get("eventType"),
        "table": data.get("table"),
        "new": data.get("record") or {},
        "old": data.get("old_record") or {},
    }


class Channel:
    """One joined subscription. Returned by subscribe, passed back to unsubscribe."""

    def __init__(
        self,
        topic: str,
        table: str,
        event: str,
        filter: str | None,
        callback: RawChangeCallback,
    ) -> None:
        self.topic = topic
        self.table = table
        self.event = event
        self.filter = filter
        self.callback = callback
        self.joined = False

    def join_payload(self, access_token: str | None) -> dict[str, Any]:
        change: dict[str, Any] = {"event": self.event, "schema": "public", "table": self.table}
        if self.filter:
            change["filter"] = self.filter
        payload: dict[str, Any] = {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [change],
            }
        }
        if access_token:
            payload["access_token"] = access_token
        return payload

    def accepts(self, event_type: str | None) -> bool:
        return self.event == "*" or self.event == event_type

    def __repr__(self) -> str:
        return f"Channel({self.topic!r}, joined={self.joined})"


class RealtimeClient:
    """RealtimeTransport over a single shared websocket connection."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        access_token: str | None = None,
        heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.url = realtime_url(url, anon_key)
        self.access_token = access_token
        self.heartbeat_seconds = heartbeat_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._connect = connect
        self._channels: dict[str, Channel] = {}
        self._refs = itertools.count(1)
        self._topics = itertools.count(1)
        self._ws: Any = None
        self._runner: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def set_access_token(self, token: str | None) -> None:
        self.access_token = token

    # -------------------------------------------------------------------------
    # RealtimeTransport port
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        table: str,
        callback: RawChangeCallback,
        *,
        event: str = "*",
        filter: str | None = None,
    ) -> Channel:
        topic = f"realtime:public:{table}:{next(self._topics)}"
        channel = Channel(topic, table, event, filter, callback)
        self._channels[topic] = channel
        self._ensure_running()
        if self.connected:
            await self._join(channel)
        return channel

    async def unsubscribe(self, channel: Channel | None) -> None:
        if channel is None or self._channels.pop(channel.topic, None) is None:
            return
        if self.connected and channel.joined:
            await self._send(channel.topic, "phx_leave", {})
        channel.joined = False
        logger.debug("Left %s", channel.topic)

    async def close(self) -> None:
        self._closing = True
        self._channels.clear()
        if self._runner is not None:
            self._runner.cancel()
            await asyncio.gather(self._runner, return_exceptions=True)
            self._runner = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    # -------------------------------------------------------------------------
    # Connection loop
    # -------------------------------------------------------------------------

    def _ensure_running(self) -> None:
        if self._runner is None or self._runner.done():
            self._closing = False
            self._runner = asyncio.create_task(self._run(), name="realtime")

    async def _run(self) -> None:
        backoff = INITIAL_BACKOFF_SECONDS
        while not self._closing:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    logger.info("Realtime connected")
                    backoff = INITIAL_BACKOFF_SECONDS
                    for channel in list(self._channels.values()):
                        await self._join(channel)
                    heartbeat = asyncio.create_task(self._heartbeat())
                    try:
                        async for raw in ws:
                            self._dispatch(raw)
                    finally:
                        heartbeat.cancel()
            except asyncio.CancelledError:
                raise
            except (OSError, WebSocketException, TimeoutError) as e:
                logger.warning("%s", TransportError(f"Realtime connection lost: {e}"))
            finally:
                self._ws = None
                for channel in self._channels.values():
                    channel.joined = False

            if self._closing:
                break
            logger.info("Reconnecting realtime in %.1fs", backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * BACKOFF_FACTOR, self.max_backoff_seconds)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            await self._send("phoenix", "heartbeat", {})

    async def _join(self, channel: Channel) -> None:
        await self._send(channel.topic, "phx_join", channel.join_payload(self.access_token))
        channel.joined = True
        logger.debug("Joined %s", channel.topic)

    async def _send(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        if self._ws is None:
            return
        message = {"topic": topic, "event": event, "payload": payload, "ref": str(next(self._refs))}
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            logger.warning("Could not send %s on %s: %s", event, topic, e)

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-JSON realtime frame")
            return
        if not isinstance(message, dict) or not isinstance(message.get("payload") or {}, dict):
            logger.warning("Ignoring malformed realtime frame")
            return

        event = message.get("event")
        topic = message.get("topic")
        payload = message.get("payload") or {}

        if event == "phx_reply" and payload.get("status") == "error":
            logger.error("%s", TransportError(f"Realtime rejected {topic}: {payload.get('response')}"))
            return
        if event == "phx_error":
            logger.error("%s", TransportError(f"Realtime channel error on {topic}"))
            return
        if event != "postgres_changes":
            return

        channel = self._channels.get(topic)
        if channel is None:
            return
        data = payload.get("data")
        if not isinstance(data, dict):
            return
        change = to_raw_change(data)
        if not channel.accepts(change["eventType"]):
            return
        try:
            channel.callback(change)
        except Exception:
            logger.exception("Realtime callback for %s failed", topic)
