# src/unitrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync protocol depends on Protocols instead of concrete implementations.
This keeps the remote store / local fallback / identity provider swappable and
makes testing easier.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from .models import Session

Row = dict[str, Any]
# Store-side row: snake_case keys, JSON-compatible values.

SessionHandler = Callable[[Session | None], Awaitable[None]]
Unsubscribe = Callable[[], None]


class RowStore(Protocol):
    """
    Table-oriented store (PostgREST over HTTP, or the local key-value fallback).

    `filters` are equality filters, `order` is "<column>.desc" / "<column>.asc".
    Implementations raise RemoteRejected (or a subtype) on failure.
    """

    async def select(
            self,
            table: str,
            *,
            filters: Mapping[str, str],
            order: str | None = None,
            token: str | None = None,
    ) -> list[Row]: ...

    async def insert(
            self,
            table: str,
            rows: list[Row],
            *,
            returning: bool = False,
            token: str | None = None,
    ) -> list[Row]: ...

    async def update(
            self,
            table: str,
            values: Row,
            *,
            filters: Mapping[str, str],
            returning: bool = False,
            token: str | None = None,
    ) -> list[Row]: ...

    async def delete(
            self,
            table: str,
            *,
            filters: Mapping[str, str],
            token: str | None = None,
    ) -> None: ...

    async def aclose(self) -> None: ...


class SessionProvider(Protocol):
    """Identity-provider side: current session + change notifications."""

    async def get_current_session(self) -> Session | None: ...

    def on_session_change(self, handler: SessionHandler) -> Unsubscribe: ...


class KeyValueStore(Protocol):
    """Durable string key/value store used by the local-only fallback."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
