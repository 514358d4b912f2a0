# src/unitrack/store/rows.py

"""Two-way mapping between entities and snake_case store rows."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..core.models import (
    DEFAULT_COURSE_COLOR,
    Course,
    Note,
    Priority,
    SubTask,
    Task,
    TaskStatus,
    TaskType,
)
from ..core.ports import Row

logger = logging.getLogger(__name__)

TASKS = "tasks"
COURSES = "courses"
NOTES = "notes"


def _subtasks_to_json(subtasks: tuple[SubTask, ...]) -> list[dict[str, Any]]:
    # Stored the way the web client wrote them (camelCase inside the JSON column).
    return [{"id": s.id, "title": s.title, "isCompleted": s.is_completed} for s in subtasks]


def _subtasks_from_json(raw: Any) -> tuple[SubTask, ...]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Dropping unreadable subtasks payload")
            return ()
    if not isinstance(raw, list):
        return ()
    out: list[SubTask] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        done = item.get("isCompleted", item.get("is_completed", False))
        out.append(SubTask(id=str(item["id"]), title=str(item.get("title") or ""), is_completed=bool(done)))
    return tuple(out)


def task_to_row(task: Task, owner_id: str) -> Row:
    return {
        "id": task.id,
        "user_id": owner_id,
        "title": task.title,
        "course": task.course,
        "description": task.description,
        "type": task.type.value,
        "status": task.status.value,
        "priority": task.priority.value,
        "due_date": task.due_date,
        "subtasks": _subtasks_to_json(task.subtasks),
        "created_at": task.created_at,
    }


def task_update_values(task: Task) -> Row:
    """Mutable columns only: id, owner and created_at never change."""
    row = task_to_row(task, "")
    for key in ("id", "user_id", "created_at"):
        row.pop(key)
    return row


def row_to_task(row: Row) -> Task:
    return Task(
        id=str(row["id"]),
        title=str(row.get("title") or ""),
        course=str(row.get("course") or ""),
        description=str(row.get("description") or ""),
        type=TaskType.from_db(row.get("type")),
        status=TaskStatus.from_db(row.get("status")),
        due_date=str(row.get("due_date") or ""),
        priority=Priority.from_db(row.get("priority")),
        subtasks=_subtasks_from_json(row.get("subtasks")),
        created_at=str(row.get("created_at") or ""),
    )


def course_to_row(course: Course, owner_id: str) -> Row:
    return {
        "id": course.id,
        "user_id": owner_id,
        "name": course.name,
        "color": course.color,
        "icon": course.icon,
        "created_at": course.created_at,
    }


def row_to_course(row: Row) -> Course:
    return Course(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        color=str(row.get("color") or DEFAULT_COURSE_COLOR),
        icon=row.get("icon"),
        created_at=str(row.get("created_at") or ""),
    )


def note_to_row(note: Note, owner_id: str) -> Row:
    return {
        "id": note.id,
        "user_id": owner_id,
        "course_id": note.course_id,
        "title": note.title,
        "content": note.content,
        "created_at": note.created_at,
        "updated_at": note.updated_at,
    }


def note_update_values(note: Note) -> Row:
    return {"title": note.title, "content": note.content, "updated_at": note.updated_at}


def row_to_note(row: Row) -> Note:
    return Note(
        id=str(row["id"]),
        course_id=str(row.get("course_id") or ""),
        title=str(row.get("title") or ""),
        content=str(row.get("content") or ""),
        created_at=str(row.get("created_at") or ""),
        updated_at=str(row.get("updated_at") or ""),
    )
