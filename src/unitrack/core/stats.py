# src/unitrack/core/stats.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .models import Task, TaskStatus


@dataclass(slots=True, frozen=True)
class DashboardStats:
    total: int
    pending: int
    completed: int
    completion_rate: int  # whole percent
    urgent: tuple[Task, ...]


def summarize(tasks: Iterable[Task], *, urgent_limit: int = 3) -> DashboardStats:
    """
    Overview numbers: anything not Completed counts as pending; urgent tasks are the
    pending ones with the earliest due dates.
    """
    items = list(tasks)
    pending = [t for t in items if t.status != TaskStatus.COMPLETED]
    completed = len(items) - len(pending)
    rate = round(completed / len(items) * 100) if items else 0
    urgent = sorted(pending, key=lambda t: (t.due_date or "9999", t.created_at))
    return DashboardStats(
        total=len(items),
        pending=len(pending),
        completed=completed,
        completion_rate=int(rate),
        urgent=tuple(urgent[: max(0, urgent_limit)]),
    )


def tasks_for_course(tasks: Iterable[Task], course_name: str) -> list[Task]:
    key = course_name.strip().casefold()
    return [t for t in tasks if t.course.strip().casefold() == key]
