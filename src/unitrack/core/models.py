# src/unitrack/core/models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum

DEFAULT_COURSE_COLOR = "#3B82F6"


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskType(StrEnum):
    ASSIGNMENT = "Assignment"
    QUIZ = "Quiz"
    PROJECT = "Project"
    EXAM = "Exam"
    READING = "Reading"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskType:
        if not raw:
            return cls.ASSIGNMENT
        try:
            return cls(raw)
        except ValueError:
            return cls.ASSIGNMENT


class TaskStatus(StrEnum):
    """
    Task completion status.

    Transitions are unconstrained: any value may follow any other.
    """

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    def toggled(self) -> TaskStatus:
        # Same rule as the task card checkbox.
        return TaskStatus.COMPLETED if self is TaskStatus.PENDING else TaskStatus.PENDING


class Priority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


@dataclass(slots=True, frozen=True)
class SubTask:
    id: str
    title: str
    is_completed: bool = False


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    course: str
    description: str
    type: TaskType
    status: TaskStatus
    due_date: str
    priority: Priority
    subtasks: tuple[SubTask, ...] = ()
    created_at: str = ""


@dataclass(slots=True, frozen=True)
class Course:
    id: str
    name: str
    color: str = DEFAULT_COURSE_COLOR
    icon: str | None = None
    created_at: str = ""


@dataclass(slots=True, frozen=True)
class Note:
    id: str
    course_id: str
    title: str
    content: str
    created_at: str = ""
    updated_at: str = ""


@dataclass(slots=True)
class TaskDraft:
    """
    User input for a new task, before an id/timestamps are assigned.

    Missing status/type/priority are filled with defaults by the protocol.
    """

    title: str
    course: str
    due_date: str
    description: str = ""
    type: TaskType | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    subtask_titles: list[str] = field(default_factory=list)

    def build(self) -> Task:
        return Task(
            id=new_id(),
            title=self.title.strip(),
            course=self.course.strip(),
            description=self.description or "",
            type=self.type or TaskType.ASSIGNMENT,
            status=self.status or TaskStatus.PENDING,
            due_date=self.due_date,
            priority=self.priority or Priority.MEDIUM,
            subtasks=tuple(SubTask(id=new_id(), title=t) for t in self.subtask_titles if t.strip()),
            created_at=utc_now_iso(),
        )


def same_course_name(a: str, b: str) -> bool:
    """Course names join tasks to courses, case-insensitively."""
    return a.strip().casefold() == b.strip().casefold()


@dataclass(slots=True, frozen=True)
class Session:
    """
    Authenticated owner context.

    Passed explicitly into every protocol call; never cached at module level.
    """

    owner_id: str
    access_token: str | None = None
    email: str | None = None
