# src/unitrack/core/cache.py

"""
In-memory state for the signed-in owner (tasks, courses, notes).

Each collection is an immutable tuple; every mutation builds a new tuple and
swaps the reference in one assignment, then notifies listeners (re-render hook).
Cache operations never raise.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Literal, TypeVar

from .models import Course, Note, Task

logger = logging.getLogger(__name__)

Kind = Literal["tasks", "courses", "notes"]
Entity = Task | Course | Note
E = TypeVar("E", Task, Course, Note)

CacheListener = Callable[[Kind], None]

KINDS: tuple[Kind, ...] = ("tasks", "courses", "notes")


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class LocalStateCache:
    def __init__(self) -> None:
        self._data: dict[Kind, tuple[Entity, ...]] = {k: () for k in KINDS}
        self._listeners: list[CacheListener] = []
        self.owner_id: str | None = None
        self.load_state: LoadState = LoadState.IDLE
        self.load_error: BaseException | None = None

    # ---- reads ----

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self._data["tasks"]  # type: ignore[return-value]

    @property
    def courses(self) -> tuple[Course, ...]:
        return self._data["courses"]  # type: ignore[return-value]

    @property
    def notes(self) -> tuple[Note, ...]:
        return self._data["notes"]  # type: ignore[return-value]

    def items(self, kind: Kind) -> tuple[Entity, ...]:
        return self._data[kind]

    def get(self, kind: Kind, entity_id: str) -> Entity | None:
        for item in self._data[kind]:
            if item.id == entity_id:
                return item
        return None

    def index_of(self, kind: Kind, entity_id: str) -> int:
        for i, item in enumerate(self._data[kind]):
            if item.id == entity_id:
                return i
        return -1

    # ---- listeners ----

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _changed(self, kind: Kind) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind)
            except Exception:
                logger.exception("Cache listener failed kind=%s", kind)

    def _swap(self, kind: Kind, items: tuple[Entity, ...]) -> None:
        self._data[kind] = items
        self._changed(kind)

    # ---- structural mutations ----

    def set_all(self, kind: Kind, items: list[E] | tuple[E, ...]) -> None:
        self._swap(kind, tuple(items))

    def append(self, kind: Kind, item: Entity) -> None:
        self._swap(kind, (*self._data[kind], item))

    def insert_at(self, kind: Kind, index: int, item: Entity) -> None:
        cur = self._data[kind]
        index = max(0, min(index, len(cur)))
        self._swap(kind, (*cur[:index], item, *cur[index:]))

    def replace(self, kind: Kind, item: Entity) -> Entity | None:
        """Replace the entity with the same id; returns the previous one (None if absent)."""
        cur = self._data[kind]
        idx = self.index_of(kind, item.id)
        if idx < 0:
            return None
        prev = cur[idx]
        self._swap(kind, (*cur[:idx], item, *cur[idx + 1:]))
        return prev

    def remove(self, kind: Kind, entity_id: str) -> tuple[Entity, int] | None:
        """Remove by id; returns (removed, index) so the caller can restore it in place."""
        cur = self._data[kind]
        idx = self.index_of(kind, entity_id)
        if idx < 0:
            return None
        removed = cur[idx]
        self._swap(kind, (*cur[:idx], *cur[idx + 1:]))
        return removed, idx

    def replace_notes_for_course(self, course_id: str, notes: list[Note]) -> None:
        kept = tuple(n for n in self.notes if n.course_id != course_id)
        self._swap("notes", (*kept, *notes))

    def clear(self) -> None:
        self.owner_id = None
        self.load_state = LoadState.IDLE
        self.load_error = None
        for kind in KINDS:
            self._swap(kind, ())

    # ---- load bookkeeping ----

    def bind_owner(self, owner_id: str) -> None:
        if self.owner_id is not None and self.owner_id != owner_id:
            self.clear()
        self.owner_id = owner_id

    def mark_loading(self) -> None:
        self.load_state = LoadState.LOADING

    def mark_loaded(self) -> None:
        self.load_state = LoadState.READY
        self.load_error = None

    def mark_failed(self, error: BaseException) -> None:
        self.load_state = LoadState.FAILED
        self.load_error = error
