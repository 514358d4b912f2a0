# src/unitrack/sync/protocol.py

"""
Synchronization protocol between the local state cache and the store.

Every mutation runs as:
  1) precondition check (session, entity present, input valid)
  2) local mutation (optimistic) OR remote write (persist-first)
  3) reconciliation: rollback / apply / compensate

Failures never escape: they are reported through the Notifier and the call
returns None/False.

Concurrency model:
- single event loop; the cache is only touched between awaits
- mutations of the same entity id run one at a time (per-key asyncio.Lock),
  so the last user action wins rather than the last network response
- the owner captured at the start of an operation is checked again after every
  await; if the cache now belongs to someone else (or nobody, after sign-out)
  the result is discarded
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from ..core.cache import Entity, Kind, LocalStateCache
from ..core.errors import CompensationFailed, NotAuthenticated, SyncError
from ..core.models import (
    DEFAULT_COURSE_COLOR,
    Course,
    Note,
    Priority,
    Session,
    Task,
    TaskDraft,
    TaskStatus,
    TaskType,
    new_id,
    same_course_name,
    utc_now_iso,
)
from ..store.db import TrackerDB
from .notifications import Level, Notifier
from .strategy import SyncStrategy

logger = logging.getLogger(__name__)

Writer = Callable[[Session, Any], Awaitable[None]]

# Fields a task update may touch; id and created_at are fixed at creation.
TASK_MUTABLE_FIELDS = frozenset(
    {"title", "course", "description", "type", "status", "due_date", "priority", "subtasks"}
)

_TASK_ENUM_FIELDS: dict[str, type] = {"status": TaskStatus, "type": TaskType, "priority": Priority}


def _coerce_task_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Parse enum fields given as plain strings; raises ValueError on unknown values."""
    out = dict(changes)
    for name, enum_cls in _TASK_ENUM_FIELDS.items():
        if name in out:
            try:
                out[name] = enum_cls(out[name])
            except ValueError:
                raise ValueError(f"invalid {name} {out[name]!r}") from None
    if "subtasks" in out:
        out["subtasks"] = tuple(out["subtasks"])
    return out


class SyncProtocol:
    def __init__(
            self,
            db: TrackerDB,
            cache: LocalStateCache,
            *,
            strategy: SyncStrategy | None = None,
            notifier: Notifier | None = None,
    ) -> None:
        self.db = db
        self.cache = cache
        self.strategy = strategy or SyncStrategy()
        self.notifier = notifier or Notifier()
        self.pending_delete: str | None = None
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    # ---- internals ----

    @contextlib.asynccontextmanager
    async def _serialized(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    def _begin(self, session: Session | None, action: str) -> Session | None:
        if session is None or not session.owner_id:
            self.notifier.error(f"Cannot {action}: not signed in.", NotAuthenticated())
            return None
        if self.cache.owner_id is None:
            self.cache.bind_owner(session.owner_id)
        elif self.cache.owner_id != session.owner_id:
            self.notifier.error(
                f"Cannot {action}: session does not match the loaded data.",
                NotAuthenticated("session changed"),
            )
            return None
        return session

    def _stale(self, session: Session, action: str) -> bool:
        if self.cache.owner_id == session.owner_id:
            return False
        logger.info("Discarding %s result: owner %s is no longer current", action, session.owner_id)
        return True

    def _report(self, action: str, err: BaseException) -> None:
        if not isinstance(err, SyncError):
            logger.error("Unexpected failure during %s", action, exc_info=err)
        self.notifier.error(f"Failed to {action}: {err}", err)

    @property
    def _optimistic(self) -> bool:
        return self.strategy.optimistic

    @property
    def _rollback(self) -> bool:
        return self.strategy.optimistic and self.strategy.rollback

    def find_course_by_name(self, name: str) -> Course | None:
        for c in self.cache.courses:
            if same_course_name(c.name, name):
                return c
        return None

    # ---- generic single-entity flows ----

    async def _create(self, s: Session, kind: Kind, entity: Entity, writer: Writer, action: str) -> bool:
        if self._optimistic:
            self.cache.append(kind, entity)
        try:
            await writer(s, entity)
        except Exception as e:
            if self._rollback and not self._stale(s, action):
                self.cache.remove(kind, entity.id)
            self._report(action, e)
            return False
        if not self._optimistic and not self._stale(s, action):
            self.cache.append(kind, entity)
        return True

    async def _update(self, s: Session, kind: Kind, current: Entity, updated: Entity, writer: Writer, action: str) -> bool:
        if self._optimistic:
            self.cache.replace(kind, updated)
        try:
            await writer(s, updated)
        except Exception as e:
            if self._rollback and not self._stale(s, action):
                self.cache.replace(kind, current)
            self._report(action, e)
            return False
        if not self._optimistic and not self._stale(s, action):
            self.cache.replace(kind, updated)
        return True

    async def _delete(self, s: Session, kind: Kind, entity_id: str, deleter: Writer, action: str) -> bool:
        async with self._serialized(entity_id):
            if self.cache.get(kind, entity_id) is None:
                self.notifier.notify(Level.WARNING, f"Cannot {action}: not found.")
                return False
            removed = self.cache.remove(kind, entity_id) if self._optimistic else None
            try:
                await deleter(s, entity_id)
            except Exception as e:
                if self._rollback and removed is not None and not self._stale(s, action):
                    entity, index = removed
                    self.cache.insert_at(kind, index, entity)
                self._report(action, e)
                return False
            if not self._optimistic and not self._stale(s, action):
                self.cache.remove(kind, entity_id)
            return True

    # ---- loading ----

    async def load_all(self, session: Session | None) -> bool:
        """Bulk fetch tasks, courses and notes for the session owner."""
        if session is None or not session.owner_id:
            self.notifier.error("Cannot load data: not signed in.", NotAuthenticated())
            return False
        self.cache.bind_owner(session.owner_id)
        self.cache.mark_loading()
        try:
            tasks, courses, notes = await asyncio.gather(
                self.db.get_tasks(session),
                self.db.get_courses(session),
                self.db.get_notes(session),
            )
        except Exception as e:
            if self._stale(session, "load"):
                return False
            # Previous contents stay; the failed state is what tells "failed" apart from "empty".
            self.cache.mark_failed(e)
            self._report("load data", e)
            return False
        if self._stale(session, "load"):
            return False
        self.cache.set_all("tasks", tasks)
        self.cache.set_all("courses", courses)
        self.cache.set_all("notes", notes)
        self.cache.mark_loaded()
        logger.info(
            "Loaded owner=%s tasks=%d courses=%d notes=%d",
            session.owner_id,
            len(tasks),
            len(courses),
            len(notes),
        )
        return True

    async def load_notes(self, session: Session | None, course_id: str) -> bool:
        s = self._begin(session, "load notes")
        if s is None:
            return False
        try:
            notes = await self.db.get_notes(s, course_id)
        except Exception as e:
            self._report("load notes", e)
            return False
        if self._stale(s, "load notes"):
            return False
        self.cache.replace_notes_for_course(course_id, notes)
        return True

    # ---- tasks ----

    async def create_task(self, session: Session | None, draft: TaskDraft) -> Task | None:
        """
        Create a task, creating its course first when no course with the same
        name (case-insensitive) exists yet.

        Course + task is all-or-nothing from the user's point of view: if the
        task write fails after the course was stored, the course is deleted
        again (compensation). A failing compensation is reported and left as is.
        """
        s = self._begin(session, "create task")
        if s is None:
            return None
        if not draft.title.strip() or not draft.course.strip():
            self.notifier.error("Cannot create task: title and course are required.")
            return None
        if not draft.due_date:
            self.notifier.error("Cannot create task: due date is required.")
            return None

        task = draft.build()
        action = f"save task {task.title!r}"

        async with self._serialized(f"course-name:{task.course.casefold()}"):
            new_course: Course | None = None
            if self.find_course_by_name(task.course) is None:
                new_course = Course(
                    id=new_id(),
                    name=task.course,
                    color=DEFAULT_COURSE_COLOR,
                    created_at=utc_now_iso(),
                )

            if self._optimistic:
                if new_course is not None:
                    self.cache.append("courses", new_course)
                self.cache.append("tasks", task)

            if new_course is not None:
                try:
                    await self.db.add_course(s, new_course)
                except Exception as e:
                    if self._rollback and not self._stale(s, action):
                        self.cache.remove("tasks", task.id)
                        self.cache.remove("courses", new_course.id)
                    self._report(f"create course {new_course.name!r}", e)
                    return None
                if not self._optimistic and not self._stale(s, action):
                    self.cache.append("courses", new_course)
                logger.info("Auto-created course %r for task %s", new_course.name, task.id)

            try:
                await self.db.add_task(s, task)
            except Exception as e:
                if new_course is not None:
                    await self._compensate_course(s, new_course)
                if self._rollback and not self._stale(s, action):
                    self.cache.remove("tasks", task.id)
                self._report(action, e)
                return None

            if not self._optimistic and not self._stale(s, action):
                self.cache.append("tasks", task)
            return task

    async def _compensate_course(self, s: Session, course: Course) -> None:
        """Undo an auto-created course after the task write failed."""
        try:
            await self.db.delete_course(s, course.id)
        except Exception as e:
            # Known residual risk: an orphan course stays in the store until the user removes it.
            err = CompensationFailed(f"could not remove auto-created course {course.name!r}", original=e)
            self.notifier.notify(Level.WARNING, f"Rollback incomplete: {err}", err)
        if not self._stale(s, "compensate course"):
            self.cache.remove("courses", course.id)

    async def _mutate_task(
            self,
            session: Session | None,
            task_id: str,
            change: Callable[[Task], Task | None],
            action: str,
    ) -> Task | None:
        s = self._begin(session, action)
        if s is None:
            return None
        async with self._serialized(task_id):
            # Computed under the lock so rapid repeated actions see each other's result.
            current = self.cache.get("tasks", task_id)
            if not isinstance(current, Task):
                self.notifier.notify(Level.WARNING, f"Cannot {action}: not found.")
                return None
            updated = change(current)
            if updated is None:
                return None
            ok = await self._update(s, "tasks", current, updated, self.db.update_task, action)
            return updated if ok else None

    async def update_task(self, session: Session | None, task_id: str, **changes: Any) -> Task | None:
        unknown = set(changes) - TASK_MUTABLE_FIELDS
        if unknown:
            self.notifier.error(f"Cannot update task: unsupported fields {sorted(unknown)}.")
            return None
        try:
            changes = _coerce_task_changes(changes)
        except ValueError as e:
            self.notifier.error(f"Cannot update task: {e}.", e)
            return None
        return await self._mutate_task(
            session, task_id, lambda cur: dataclasses.replace(cur, **changes), "update task"
        )

    async def set_task_status(self, session: Session | None, task_id: str, status: TaskStatus | str) -> Task | None:
        return await self.update_task(session, task_id, status=status)

    async def toggle_task_status(self, session: Session | None, task_id: str) -> Task | None:
        return await self._mutate_task(
            session,
            task_id,
            lambda cur: dataclasses.replace(cur, status=cur.status.toggled()),
            "update task",
        )

    async def toggle_subtask(self, session: Session | None, task_id: str, subtask_id: str) -> Task | None:
        def flip(cur: Task) -> Task | None:
            if not any(st.id == subtask_id for st in cur.subtasks):
                self.notifier.notify(Level.WARNING, "Cannot update subtask: not found.")
                return None
            subtasks = tuple(
                dataclasses.replace(st, is_completed=not st.is_completed) if st.id == subtask_id else st
                for st in cur.subtasks
            )
            return dataclasses.replace(cur, subtasks=subtasks)

        return await self._mutate_task(session, task_id, flip, "update subtask")

    # ---- two-phase task delete ----

    def request_delete(self, task_id: str) -> bool:
        """Remember the delete candidate; nothing is mutated until confirm_delete()."""
        if self.cache.get("tasks", task_id) is None:
            return False
        self.pending_delete = task_id
        return True

    def cancel_delete(self) -> None:
        self.pending_delete = None

    async def confirm_delete(self, session: Session | None) -> bool:
        task_id = self.pending_delete
        if task_id is None:
            return False
        self.pending_delete = None
        s = self._begin(session, "delete task")
        if s is None:
            return False
        return await self._delete(s, "tasks", task_id, self.db.delete_task, "delete task")

    # ---- courses ----

    async def create_course(
            self,
            session: Session | None,
            name: str,
            *,
            color: str | None = None,
            icon: str | None = None,
    ) -> Course | None:
        s = self._begin(session, "create course")
        if s is None:
            return None
        name = name.strip()
        if not name:
            self.notifier.error("Cannot create course: name is required.")
            return None
        async with self._serialized(f"course-name:{name.casefold()}"):
            existing = self.find_course_by_name(name)
            if existing is not None:
                self.notifier.notify(Level.INFO, f"Course {existing.name!r} already exists.")
                return existing
            course = Course(
                id=new_id(),
                name=name,
                color=color or DEFAULT_COURSE_COLOR,
                icon=icon,
                created_at=utc_now_iso(),
            )
            ok = await self._create(s, "courses", course, self.db.add_course, f"add course {name!r}")
            return course if ok else None

    async def delete_course(self, session: Session | None, course_id: str) -> bool:
        s = self._begin(session, "delete course")
        if s is None:
            return False
        return await self._delete(s, "courses", course_id, self.db.delete_course, "delete course")

    # ---- notes ----

    async def create_note(self, session: Session | None, course_id: str, title: str, content: str) -> Note | None:
        s = self._begin(session, "save note")
        if s is None:
            return None
        if not title.strip() or not content.strip():
            self.notifier.error("Cannot save note: title and content are required.")
            return None
        if self.cache.get("courses", course_id) is None:
            self.notifier.error("Cannot save note: unknown course.")
            return None
        now = utc_now_iso()
        note = Note(id=new_id(), course_id=course_id, title=title.strip(), content=content, created_at=now, updated_at=now)
        ok = await self._create(s, "notes", note, self.db.add_note, "save note")
        return note if ok else None

    async def update_note(
            self,
            session: Session | None,
            note_id: str,
            *,
            title: str | None = None,
            content: str | None = None,
    ) -> Note | None:
        s = self._begin(session, "save note")
        if s is None:
            return None
        async with self._serialized(note_id):
            current = self.cache.get("notes", note_id)
            if not isinstance(current, Note):
                self.notifier.notify(Level.WARNING, "Cannot save note: not found.")
                return None
            updated = dataclasses.replace(
                current,
                title=current.title if title is None else title.strip(),
                content=current.content if content is None else content,
                updated_at=utc_now_iso(),
            )
            if not updated.title or not updated.content.strip():
                self.notifier.error("Cannot save note: title and content are required.")
                return None
            ok = await self._update(s, "notes", current, updated, self.db.update_note, "save note")
            return updated if ok else None

    async def delete_note(self, session: Session | None, note_id: str) -> bool:
        s = self._begin(session, "delete note")
        if s is None:
            return False
        return await self._delete(s, "notes", note_id, self.db.delete_note, "delete note")

    # ---- session hooks ----

    def reset(self) -> None:
        """Sign-out: forget cached state and any pending delete."""
        self.pending_delete = None
        self.cache.clear()
