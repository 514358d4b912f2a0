# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Mapping

from unitrack.core.errors import RemoteRejected
from unitrack.core.ports import Row
from unitrack.store.local import LocalRowStore


class MemoryKeyValueStore:
    """Volatile KeyValueStore; `data` is inspectable."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FakeRowStore:
    """
    In-memory RowStore for protocol tests.

    - Captures calls as (op, table) for assertions
    - fail_on(op, table): the next matching calls raise RemoteRejected
    - silent_on(op, table): writes are dropped and return no rows (policy-style rejection)
    - hold(): makes every call wait until release() (to interleave with sign-out etc.)
    """

    def __init__(self) -> None:
        self.kv = MemoryKeyValueStore()
        self._rows = LocalRowStore(self.kv)
        self.calls: list[tuple[str, str]] = []
        self._fail: dict[tuple[str, str], int] = {}
        self._silent: set[tuple[str, str]] = set()
        self._gate: asyncio.Event | None = None
        self.closed = False

    # ---- failure injection ----

    def fail_on(self, op: str, table: str, times: int = 1_000_000) -> None:
        self._fail[(op, table)] = times

    def clear_failures(self) -> None:
        self._fail.clear()
        self._silent.clear()

    def silent_on(self, op: str, table: str) -> None:
        self._silent.add((op, table))

    def hold(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    async def _enter(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if self._gate is not None:
            await self._gate.wait()
        left = self._fail.get((op, table), 0)
        if left > 0:
            self._fail[(op, table)] = left - 1
            raise RemoteRejected(f"{op} {table} failed (injected)", code="42501", status=403)

    def calls_of(self, op: str, table: str | None = None) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] == op and (table is None or c[1] == table)]

    # ---- direct inspection (bypasses call recording) ----

    async def rows(self, table: str) -> list[Row]:
        return await self._rows.select(table, filters={})

    # ---- RowStore ----

    async def select(self, table: str, *, filters: Mapping[str, str], order: str | None = None, token=None):
        await self._enter("select", table)
        return await self._rows.select(table, filters=filters, order=order)

    async def insert(self, table: str, rows: list[Row], *, returning: bool = False, token=None):
        await self._enter("insert", table)
        if ("insert", table) in self._silent:
            return []
        return await self._rows.insert(table, rows, returning=returning)

    async def update(self, table: str, values: Row, *, filters: Mapping[str, str], returning: bool = False, token=None):
        await self._enter("update", table)
        if ("update", table) in self._silent:
            return []
        return await self._rows.update(table, values, filters=filters, returning=returning)

    async def delete(self, table: str, *, filters: Mapping[str, str], token=None):
        await self._enter("delete", table)
        await self._rows.delete(table, filters=filters)

    async def aclose(self) -> None:
        self.closed = True
