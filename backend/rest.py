"""
PostgREST-compatible backend client.

Implements the core Backend port on top of httpx. Filters are encoded the
PostgREST way (``col=eq.value``, ``col=in.(a,b)``); single-row reads and
writes ask for an object instead of an array.
"""

import logging
from typing import Any, Iterable, Mapping

import httpx

from core.exceptions import BackendError
from core.ports import Filters, Row

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
SINGLE_OBJECT = "application/vnd.pgrst.object+json"
_RESERVED = set(',()"')


def _encode_scalar(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def _encode_member(value: Any) -> str:
    text = _encode_scalar(value)
    if _RESERVED & set(text) or " " in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


def encode_filters(filters: Filters | None) -> list[tuple[str, str]]:
    """
    Turn ``{"col": value}`` into PostgREST query parameters.

    Example:
        {"id": 7, "user_id": ["a", "b"], "end_time": None}
        -> [("id", "eq.7"), ("user_id", "in.(a,b)"), ("end_time", "is.null")]
    """
    params: list[tuple[str, str]] = []
    for column, value in (filters or {}).items():
        if value is None:
            params.append((column, "is.null"))
        elif isinstance(value, (list, tuple, set, frozenset)):
            members = ",".join(_encode_member(v) for v in value)
            params.append((column, f"in.({members})"))
        else:
            params.append((column, f"eq.{_encode_scalar(value)}"))
    return params


def _parse_count(content_range: str | None) -> int:
    # "0-24/3573" or "*/0"
    if not content_range or "/" not in content_range:
        return 0
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class RestBackend:
    """Backend port over the PostgREST HTTP API."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        access_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.anon_key = anon_key
        self.access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            timeout=timeout,
            transport=transport,
            headers={"apikey": anon_key},
        )

    def set_access_token(self, token: str | None) -> None:
        self.access_token = token

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Backend port
    # -------------------------------------------------------------------------

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        single: bool = False,
    ) -> Any:
        params = [("select", columns), *encode_filters(filters)]
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        headers = {"Accept": SINGLE_OBJECT} if single else {}
        return await self._request("GET", table, params=params, headers=headers)

    async def insert(
        self,
        table: str,
        rows: Row | Iterable[Row],
        *,
        returning: str | None = "*",
        single: bool = False,
    ) -> Any:
        body = rows if isinstance(rows, Mapping) else list(rows)
        params, headers = self._returning(returning, single)
        return await self._request("POST", table, params=params, json=body, headers=headers)

    async def update(
        self,
        table: str,
        values: Row,
        *,
        filters: Filters,
        returning: str | None = "*",
        single: bool = False,
    ) -> Any:
        params, headers = self._returning(returning, single)
        params.extend(encode_filters(filters))
        return await self._request("PATCH", table, params=params, json=dict(values), headers=headers)

    async def delete(
        self,
        table: str,
        *,
        filters: Filters,
        returning: str | None = None,
    ) -> list[Row]:
        params, headers = self._returning(returning, single=False)
        params.extend(encode_filters(filters))
        result = await self._request("DELETE", table, params=params, headers=headers)
        return result or []

    async def count(self, table: str, *, filters: Filters | None = None) -> int:
        params = [("select", "*"), *encode_filters(filters)]
        response = await self._send("HEAD", table, params=params, headers={"Prefer": "count=exact"})
        return _parse_count(response.headers.get("content-range"))

    # -------------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------------

    @staticmethod
    def _returning(returning: str | None, single: bool) -> tuple[list[tuple[str, str]], dict[str, str]]:
        if returning is None:
            return [], {"Prefer": "return=minimal"}
        headers = {"Prefer": "return=representation"}
        if single:
            headers["Accept"] = SINGLE_OBJECT
        return [("select", returning)], headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]],
        headers: dict[str, str],
        json: Any = None,
    ) -> Any:
        response = await self._send(method, table, params=params, headers=headers, json=json)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _send(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]],
        headers: dict[str, str],
        json: Any = None,
    ) -> httpx.Response:
        auth = {"Authorization": f"Bearer {self.access_token or self.anon_key}"}
        try:
            response = await self._client.request(
                method, f"/{table}", params=params, headers={**auth, **headers}, json=json
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, table, e)
            raise BackendError(str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            raise self._error(response)
        logger.debug("%s %s -> %d", method, table, response.status_code)
        return response

    @staticmethod
    def _error(response: httpx.Response) -> BackendError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.reason_phrase or f"HTTP {response.status_code}"
        return BackendError(message, code=body.get("code"))
