# src/unitrack/store/local.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, TypeVar

from ..core.errors import StoreCorrupted
from ..core.ports import KeyValueStore, Row

logger = logging.getLogger(__name__)

KEY_PREFIX = "unitrack_"

T = TypeVar("T")


class SqliteKeyValueStore:
    """
    Durable string key/value store on SQLite.

    One table, created if missing.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "local.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("SqliteKeyValueStore ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ---- public API ----

    def get(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return None if row is None else str(row[0])
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, time.time()),
            )
            conn.commit()
        finally:
            conn.close()


def _matches(row: Row, filters: Mapping[str, str]) -> bool:
    return all(str(row.get(col)) == str(val) for col, val in filters.items())


def _sort_rows(rows: list[Row], order: str | None) -> list[Row]:
    if not order:
        return rows
    col, _, direction = order.partition(".")
    return sorted(rows, key=lambda r: str(r.get(col) or ""), reverse=(direction == "desc"))


class LocalRowStore:
    """
    RowStore used when no remote store is configured.

    Each table lives under a single key as one JSON array. Reads deserialize
    the whole array; every write is read-transform-write of the whole array.
    A corrupt payload raises StoreCorrupted instead of being overwritten.

    Key-value I/O runs in a worker thread; calls on one table are serialized
    so concurrent read-transform-write cycles cannot drop each other's rows.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv
        self._table_locks: dict[str, asyncio.Lock] = {}

    async def aclose(self) -> None:
        return

    @staticmethod
    def key_for(table: str) -> str:
        return f"{KEY_PREFIX}{table}"

    def _load(self, table: str) -> list[Row]:
        raw = self._kv.get(self.key_for(table))
        if raw is None or not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise StoreCorrupted(f"local payload for {table!r} is not valid JSON") from e
        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            raise StoreCorrupted(f"local payload for {table!r} is not an array of rows")
        return data

    def _save(self, table: str, rows: list[Row]) -> None:
        self._kv.set(self.key_for(table), json.dumps(rows, ensure_ascii=False))

    def _rewrite(self, table: str, fn: Callable[[list[Row]], list[Row]]) -> None:
        self._save(table, fn(self._load(table)))

    async def _in_thread(self, table: str, fn: Callable[..., T], *args: Any) -> T:
        lock = self._table_locks.setdefault(table, asyncio.Lock())
        async with lock:
            return await asyncio.to_thread(fn, *args)

    async def select(
            self,
            table: str,
            *,
            filters: Mapping[str, str],
            order: str | None = None,
            token: str | None = None,
    ) -> list[Row]:
        loaded = await self._in_thread(table, self._load, table)
        rows = [dict(r) for r in loaded if _matches(r, filters)]
        return _sort_rows(rows, order)

    async def insert(
            self,
            table: str,
            rows: list[Row],
            *,
            returning: bool = False,
            token: str | None = None,
    ) -> list[Row]:
        new_rows = [dict(r) for r in rows]
        await self._in_thread(table, self._rewrite, table, lambda cur: [*cur, *new_rows])
        logger.debug("Local insert table=%s n=%d", table, len(new_rows))
        return [dict(r) for r in new_rows] if returning else []

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
            raise ValueError("update requires at least one filter")
        touched: list[Row] = []

        def apply(cur: list[Row]) -> list[Row]:
            out: list[Row] = []
            for r in cur:
                if _matches(r, filters):
                    r = {**r, **values}
                    touched.append(dict(r))
                out.append(r)
            return out

        await self._in_thread(table, self._rewrite, table, apply)
        return touched if returning else []

    async def delete(
            self,
            table: str,
            *,
            filters: Mapping[str, str],
            token: str | None = None,
    ) -> None:
        if not filters:
            raise ValueError("delete requires at least one filter")
        await self._in_thread(table, self._rewrite, table, lambda cur: [r for r in cur if not _matches(r, filters)])
