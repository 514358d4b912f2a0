# src/unitrack/store/remote.py

"""
Remote row store: Supabase REST (PostgREST) over httpx.

Only the table CRUD surface the app needs. No retries: a failed write is
reported to the sync protocol immediately so it can roll back.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..core.errors import RemoteRejected
from ..core.ports import Row

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"


def _make_timeout(total_s: float) -> httpx.Timeout:
    connect_s = min(5.0, total_s)
    return httpx.Timeout(connect=connect_s, read=total_s, write=total_s, pool=connect_s)


def _eq_params(filters: Mapping[str, str]) -> dict[str, str]:
    return {col: f"eq.{val}" for col, val in filters.items()}


def _error_from_response(resp: httpx.Response, *, table: str, op: str) -> RemoteRejected:
    """PostgREST errors carry {"message", "code", "details", "hint"}."""
    message = ""
    code: str | None = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = str(body.get("message") or body.get("error_description") or body.get("error") or "")
        raw_code = body.get("code")
        code = str(raw_code) if raw_code is not None else None
    if not message:
        message = resp.text.strip() or resp.reason_phrase or "request failed"
    return RemoteRejected(f"{op} {table} failed ({resp.status_code}): {message}", code=code, status=resp.status_code)


class PostgrestStore:
    """RowStore backed by a Supabase project's REST endpoint."""

    def __init__(
            self,
            base_url: str,
            anon_key: str,
            *,
            timeout_seconds: float = 10.0,
            transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url.strip() or not anon_key.strip():
            raise ValueError("base_url and anon_key are required")
        self._anon_key = anon_key.strip()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + REST_PREFIX,
            timeout=_make_timeout(float(timeout_seconds)),
            transport=transport,
            headers={"apikey": self._anon_key},
        )
        logger.info("PostgrestStore ready url=%s", base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, token: str | None, *, prefer: str | None = None) -> dict[str, str]:
        # Without a user token requests run as the anon role (row policies will usually deny).
        headers = {"Authorization": f"Bearer {token or self._anon_key}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
            self,
            method: str,
            table: str,
            *,
            op: str,
            params: dict[str, str] | None = None,
            json: Any = None,
            headers: dict[str, str],
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, f"/{table}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteRejected(f"{op} {table} failed: {e.__class__.__name__}: {e}") from e
        logger.debug("%s %s -> %s", method, resp.request.url, resp.status_code)
        if resp.status_code >= 400:
            raise _error_from_response(resp, table=table, op=op)
        return resp

    @staticmethod
    def _rows(resp: httpx.Response) -> list[Row]:
        if not resp.content:
            return []
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteRejected("store returned a non-JSON body") from e
        if isinstance(data, list):
            return [r for r in data if isinstance(r, dict)]
        if isinstance(data, dict):
            return [data]
        return []

    async def select(
            self,
            table: str,
            *,
            filters: Mapping[str, str],
            order: str | None = None,
            token: str | None = None,
    ) -> list[Row]:
        params = {"select": "*", **_eq_params(filters)}
        if order:
            params["order"] = order
        resp = await self._request("GET", table, op="select", params=params, headers=self._headers(token))
        return self._rows(resp)

    async def insert(
            self,
            table: str,
            rows: list[Row],
            *,
            returning: bool = False,
            token: str | None = None,
    ) -> list[Row]:
        prefer = "return=representation" if returning else "return=minimal"
        resp = await self._request(
            "POST",
            table,
            op="insert",
            json=rows,
            headers=self._headers(token, prefer=prefer),
        )
        return self._rows(resp) if returning else []

    async def update(
            self,
            table: str,
            values: Row,
            *,
            filters: Mapping[str, str],
            returning: bool = False,
            token: str | None = None,
    ) -> list[Row]:
        if not filters:
            # PostgREST would update every visible row.
            raise ValueError("update requires at least one filter")
        prefer = "return=representation" if returning else "return=minimal"
        resp = await self._request(
            "PATCH",
            table,
            op="update",
            params=_eq_params(filters),
            json=values,
            headers=self._headers(token, prefer=prefer),
        )
        return self._rows(resp) if returning else []

    async def delete(
            self,
            table: str,
            *,
            filters: Mapping[str, str],
            token: str | None = None,
    ) -> None:
        if not filters:
            raise ValueError("delete requires at least one filter")
        await self._request(
            "DELETE",
            table,
            op="delete",
            params=_eq_params(filters),
            headers=self._headers(token),
        )
