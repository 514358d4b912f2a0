# src/unitrack/store/db.py

"""
Entity-level data operations on top of a RowStore.

Every call takes the Session explicitly and scopes queries by its owner id.
With verify_writes on, inserts/updates ask for the written rows back and an
empty result is reported as SilentRejection.
"""

from __future__ import annotations

import logging

from ..core.errors import NotAuthenticated, SilentRejection
from ..core.models import Course, Note, Session, Task
from ..core.ports import Row, RowStore
from .rows import (
    COURSES,
    NOTES,
    TASKS,
    course_to_row,
    note_to_row,
    note_update_values,
    row_to_course,
    row_to_note,
    row_to_task,
    task_to_row,
    task_update_values,
)

logger = logging.getLogger(__name__)


def _require(session: Session | None) -> Session:
    if session is None or not session.owner_id:
        raise NotAuthenticated()
    return session


class TrackerDB:
    def __init__(self, store: RowStore, *, verify_writes: bool = False) -> None:
        self.store = store
        self.verify_writes = verify_writes

    async def aclose(self) -> None:
        await self.store.aclose()

    # ---- helpers ----

    def _owned(self, session: Session, **extra: str) -> dict[str, str]:
        return {"user_id": session.owner_id, **extra}

    async def _insert(self, session: Session, table: str, row: Row) -> None:
        written = await self.store.insert(
            table, [row], returning=self.verify_writes, token=session.access_token
        )
        if self.verify_writes and not written:
            raise SilentRejection(table, "insert")

    async def _update(self, session: Session, table: str, entity_id: str, values: Row) -> None:
        written = await self.store.update(
            table,
            values,
            filters=self._owned(session, id=entity_id),
            returning=self.verify_writes,
            token=session.access_token,
        )
        if self.verify_writes and not written:
            raise SilentRejection(table, "update")

    async def _delete(self, session: Session, table: str, entity_id: str) -> None:
        await self.store.delete(table, filters=self._owned(session, id=entity_id), token=session.access_token)

    # ---- tasks ----

    async def get_tasks(self, session: Session | None) -> list[Task]:
        s = _require(session)
        rows = await self.store.select(TASKS, filters=self._owned(s), order="created_at.desc", token=s.access_token)
        return [row_to_task(r) for r in rows]

    async def add_task(self, session: Session | None, task: Task) -> None:
        s = _require(session)
        await self._insert(s, TASKS, task_to_row(task, s.owner_id))
        logger.debug("Task stored id=%s", task.id)

    async def update_task(self, session: Session | None, task: Task) -> None:
        s = _require(session)
        await self._update(s, TASKS, task.id, task_update_values(task))

    async def delete_task(self, session: Session | None, task_id: str) -> None:
        s = _require(session)
        await self._delete(s, TASKS, task_id)

    # ---- courses ----

    async def get_courses(self, session: Session | None) -> list[Course]:
        s = _require(session)
        rows = await self.store.select(COURSES, filters=self._owned(s), order="created_at.desc", token=s.access_token)
        return [row_to_course(r) for r in rows]

    async def add_course(self, session: Session | None, course: Course) -> None:
        s = _require(session)
        await self._insert(s, COURSES, course_to_row(course, s.owner_id))

    async def delete_course(self, session: Session | None, course_id: str) -> None:
        s = _require(session)
        await self._delete(s, COURSES, course_id)

    # ---- notes ----

    async def get_notes(self, session: Session | None, course_id: str | None = None) -> list[Note]:
        s = _require(session)
        filters = self._owned(s) if course_id is None else self._owned(s, course_id=course_id)
        rows = await self.store.select(NOTES, filters=filters, order="updated_at.desc", token=s.access_token)
        return [row_to_note(r) for r in rows]

    async def add_note(self, session: Session | None, note: Note) -> None:
        s = _require(session)
        await self._insert(s, NOTES, note_to_row(note, s.owner_id))

    async def update_note(self, session: Session | None, note: Note) -> None:
        s = _require(session)
        await self._update(s, NOTES, note.id, note_update_values(note))

    async def delete_note(self, session: Session | None, note_id: str) -> None:
        s = _require(session)
        await self._delete(s, NOTES, note_id)
