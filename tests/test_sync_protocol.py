# tests/test_sync_protocol.py

from __future__ import annotations

import asyncio

import pytest

from unitrack.core.errors import CompensationFailed, NotAuthenticated, SilentRejection
from unitrack.core.models import Priority, Session, TaskDraft, TaskStatus, TaskType
from unitrack.sync.strategy import Discipline

ALL_DISCIPLINES = [Discipline.OPTIMISTIC, Discipline.PERSIST_FIRST]


def essay() -> TaskDraft:
    return TaskDraft(title="Essay", course="ENG200", due_date="2025-01-10", priority=Priority.HIGH)


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ALL_DISCIPLINES)
async def test_create_task_creates_missing_course(make_protocol, store, session, discipline) -> None:
    proto = make_protocol(discipline)

    task = await proto.create_task(session, essay())

    assert task is not None
    assert task.status == TaskStatus.PENDING
    assert [c.name for c in proto.cache.courses] == ["ENG200"]
    assert [(t.title, t.status) for t in proto.cache.tasks] == [("Essay", TaskStatus.PENDING)]

    course_rows = await store.rows("courses")
    task_rows = await store.rows("tasks")
    assert [r["name"] for r in course_rows] == ["ENG200"]
    assert [(r["title"], r["status"], r["user_id"]) for r in task_rows] == [("Essay", "Pending", "student-1")]
    assert task_rows[0]["due_date"] == "2025-01-10"
    assert proto.notifier.errors() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ALL_DISCIPLINES)
async def test_course_names_match_case_insensitively(make_protocol, store, session, discipline) -> None:
    proto = make_protocol(discipline)

    await proto.create_task(session, TaskDraft(title="Lab 1", course="CS101", due_date="2025-02-01"))
    await proto.create_task(session, TaskDraft(title="Lab 2", course="cs101", due_date="2025-02-08"))

    assert [c.name for c in proto.cache.courses] == ["CS101"]
    assert len(store.calls_of("insert", "courses")) == 1
    assert len(await store.rows("courses")) == 1
    assert len(proto.cache.tasks) == 2


@pytest.mark.asyncio
async def test_concurrent_creates_for_new_course_share_it(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.PERSIST_FIRST)

    await asyncio.gather(
        proto.create_task(session, TaskDraft(title="A", course="MATH1", due_date="2025-03-01")),
        proto.create_task(session, TaskDraft(title="B", course="math1", due_date="2025-03-02")),
    )

    assert len(await store.rows("courses")) == 1
    assert len(proto.cache.tasks) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ALL_DISCIPLINES)
async def test_failed_task_write_removes_auto_created_course(make_protocol, store, session, discipline) -> None:
    proto = make_protocol(discipline)
    store.fail_on("insert", "tasks")

    assert await proto.create_task(session, essay()) is None

    assert proto.cache.courses == ()
    assert proto.cache.tasks == ()
    assert len(proto.notifier.errors()) == 1

    # A fresh load sees what the store really holds.
    store.clear_failures()
    fresh = make_protocol(discipline)
    assert await fresh.load_all(session)
    assert fresh.cache.courses == ()
    assert fresh.cache.tasks == ()


@pytest.mark.asyncio
async def test_failed_compensation_is_reported_and_leaves_orphan(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.PERSIST_FIRST)
    store.fail_on("insert", "tasks")
    store.fail_on("delete", "courses")

    assert await proto.create_task(session, essay()) is None

    assert proto.cache.courses == ()
    assert any(isinstance(n.error, CompensationFailed) for n in proto.notifier.history)

    store.clear_failures()
    fresh = make_protocol(Discipline.PERSIST_FIRST)
    await fresh.load_all(session)
    # Known residual risk: the course survives in the store.
    assert [c.name for c in fresh.cache.courses] == ["ENG200"]


@pytest.mark.asyncio
async def test_failed_course_write_creates_nothing(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    store.fail_on("insert", "courses")

    assert await proto.create_task(session, essay()) is None

    assert proto.cache.courses == ()
    assert proto.cache.tasks == ()
    assert store.calls_of("insert", "tasks") == []


@pytest.mark.asyncio
async def test_persist_first_failures_leave_cache_unchanged(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.PERSIST_FIRST)
    task = await proto.create_task(session, essay())
    assert task is not None
    before_tasks = proto.cache.tasks
    before_courses = proto.cache.courses

    store.fail_on("update", "tasks")
    store.fail_on("insert", "tasks")
    store.fail_on("delete", "tasks")

    assert await proto.set_task_status(session, task.id, TaskStatus.COMPLETED) is None
    assert proto.cache.tasks == before_tasks

    assert await proto.create_task(session, TaskDraft(title="Reading", course="eng200", due_date="2025-01-12")) is None
    assert proto.cache.tasks == before_tasks
    assert proto.cache.courses == before_courses

    assert proto.request_delete(task.id)
    assert await proto.confirm_delete(session) is False
    assert proto.cache.tasks == before_tasks

    assert len(proto.notifier.errors()) == 3


@pytest.mark.asyncio
async def test_optimistic_status_toggle_rolls_back_on_failure(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    task = await proto.create_task(session, essay())
    assert task is not None and task.status == TaskStatus.PENDING

    seen: list[TaskStatus] = []
    proto.cache.subscribe(lambda kind: seen.append(proto.cache.tasks[0].status) if kind == "tasks" else None)
    store.fail_on("update", "tasks")

    assert await proto.set_task_status(session, task.id, TaskStatus.COMPLETED) is None

    # Applied first, then reverted.
    assert seen == [TaskStatus.COMPLETED, TaskStatus.PENDING]
    assert proto.cache.tasks[0].status == TaskStatus.PENDING
    assert len(proto.notifier.errors()) == 1


@pytest.mark.asyncio
async def test_optimistic_delete_restores_task_in_place(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    for title in ("One", "Two", "Three"):
        await proto.create_task(session, TaskDraft(title=title, course="HIST", due_date="2025-04-01"))
    before = proto.cache.tasks
    store.fail_on("delete", "tasks")

    assert proto.request_delete(before[1].id)
    assert await proto.confirm_delete(session) is False

    assert proto.cache.tasks == before


@pytest.mark.asyncio
async def test_optimistic_create_rolls_back_phantom_task(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    await proto.create_course(session, "ENG200")
    store.fail_on("insert", "tasks")

    assert await proto.create_task(session, essay()) is None

    assert proto.cache.tasks == ()
    # Existing course is not touched by the compensation.
    assert [c.name for c in proto.cache.courses] == ["ENG200"]
    assert store.calls_of("delete", "courses") == []


@pytest.mark.asyncio
async def test_optimistic_without_rollback_keeps_local_change(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC, rollback=False)
    task = await proto.create_task(session, essay())
    assert task is not None
    store.fail_on("update", "tasks")

    assert await proto.toggle_task_status(session, task.id) is None

    assert proto.cache.tasks[0].status == TaskStatus.COMPLETED
    assert len(proto.notifier.errors()) == 1


@pytest.mark.asyncio
async def test_silent_rejection_is_rolled_back_like_an_error(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC, verify_writes=True)
    task = await proto.create_task(session, essay())
    assert task is not None
    store.silent_on("update", "tasks")

    assert await proto.toggle_task_status(session, task.id) is None

    assert proto.cache.tasks[0].status == TaskStatus.PENDING
    errors = proto.notifier.errors()
    assert len(errors) == 1
    assert isinstance(errors[0].error, SilentRejection)


@pytest.mark.asyncio
async def test_silent_insert_goes_unnoticed_without_verification(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.PERSIST_FIRST, verify_writes=False)
    store.silent_on("insert", "tasks")

    assert await proto.create_task(session, essay()) is not None

    assert len(proto.cache.tasks) == 1
    assert await store.rows("tasks") == []


@pytest.mark.asyncio
async def test_confirm_delete_without_request_is_noop(make_protocol, store, session) -> None:
    proto = make_protocol()
    await proto.create_task(session, essay())
    before = proto.cache.tasks
    store.calls.clear()

    assert await proto.confirm_delete(session) is False

    assert store.calls == []
    assert proto.cache.tasks == before
    assert proto.notifier.history == []


@pytest.mark.asyncio
async def test_cancelled_delete_makes_no_remote_call(make_protocol, store, session) -> None:
    proto = make_protocol()
    task = await proto.create_task(session, essay())
    assert task is not None
    store.calls.clear()

    assert proto.request_delete(task.id)
    assert proto.cache.tasks[0].id == task.id
    proto.cancel_delete()

    assert await proto.confirm_delete(session) is False
    assert store.calls == []
    assert len(proto.cache.tasks) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ALL_DISCIPLINES)
async def test_confirmed_delete_removes_task(make_protocol, store, session, discipline) -> None:
    proto = make_protocol(discipline)
    task = await proto.create_task(session, essay())
    assert task is not None

    assert proto.request_delete(task.id)
    assert await proto.confirm_delete(session) is True

    assert proto.cache.tasks == ()
    assert await store.rows("tasks") == []
    assert proto.pending_delete is None


@pytest.mark.asyncio
async def test_request_delete_of_unknown_task_is_refused(make_protocol) -> None:
    proto = make_protocol()
    assert proto.request_delete("missing") is False
    assert proto.pending_delete is None


@pytest.mark.asyncio
async def test_mutations_without_session_fail_with_not_authenticated(make_protocol, store) -> None:
    proto = make_protocol()

    assert await proto.create_task(None, essay()) is None
    assert await proto.create_course(None, "BIO") is None

    assert store.calls == []
    assert proto.cache.tasks == ()
    errors = proto.notifier.errors()
    assert len(errors) == 2
    assert all(isinstance(n.error, NotAuthenticated) for n in errors)


@pytest.mark.asyncio
async def test_session_of_another_owner_is_refused(make_protocol, store) -> None:
    proto = make_protocol()

    assert await proto.create_task(Session(owner_id="someone-else"), essay()) is None
    assert store.calls == []


@pytest.mark.asyncio
async def test_rapid_toggles_apply_in_user_order(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    task = await proto.create_task(session, essay())
    assert task is not None

    store.hold()
    first = asyncio.create_task(proto.toggle_task_status(session, task.id))
    second = asyncio.create_task(proto.toggle_task_status(session, task.id))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    store.release()
    await asyncio.gather(first, second)

    assert proto.cache.tasks[0].status == TaskStatus.PENDING
    assert (await store.rows("tasks"))[0]["status"] == "Pending"
    assert len(store.calls_of("update", "tasks")) == 2


@pytest.mark.asyncio
async def test_result_arriving_after_sign_out_is_discarded(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.PERSIST_FIRST)
    store.hold()

    pending = asyncio.create_task(proto.create_task(session, essay()))
    await asyncio.sleep(0)
    proto.reset()  # sign-out while the write is in flight
    store.release()
    await pending

    assert proto.cache.tasks == ()
    assert proto.cache.courses == ()
    assert proto.cache.owner_id is None


@pytest.mark.asyncio
async def test_rollback_after_sign_out_does_not_touch_cache(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    task = await proto.create_task(session, essay())
    assert task is not None
    store.fail_on("delete", "tasks")
    store.hold()

    assert proto.request_delete(task.id)
    pending = asyncio.create_task(proto.confirm_delete(session))
    await asyncio.sleep(0)
    proto.reset()
    store.release()

    assert await pending is False
    assert proto.cache.tasks == ()


@pytest.mark.asyncio
async def test_update_task_rejects_immutable_fields(make_protocol, store, session) -> None:
    proto = make_protocol()
    task = await proto.create_task(session, essay())
    assert task is not None
    store.calls.clear()

    assert await proto.update_task(session, task.id, id="other") is None
    assert store.calls == []
    assert proto.cache.tasks[0].id == task.id


@pytest.mark.asyncio
async def test_update_task_changes_fields(make_protocol, store, session) -> None:
    proto = make_protocol()
    task = await proto.create_task(session, essay())
    assert task is not None

    updated = await proto.update_task(session, task.id, title="Final essay", status=TaskStatus.IN_PROGRESS)

    assert updated is not None
    assert proto.cache.tasks[0].title == "Final essay"
    row = (await store.rows("tasks"))[0]
    assert (row["title"], row["status"]) == ("Final essay", "In Progress")
    assert row["created_at"] == task.created_at


@pytest.mark.asyncio
async def test_toggle_subtask(make_protocol, store, session) -> None:
    proto = make_protocol()
    draft = essay()
    draft.subtask_titles = ["Outline", "Draft"]
    task = await proto.create_task(session, draft)
    assert task is not None

    updated = await proto.toggle_subtask(session, task.id, task.subtasks[1].id)

    assert updated is not None
    assert [s.is_completed for s in proto.cache.tasks[0].subtasks] == [False, True]
    stored = (await store.rows("tasks"))[0]["subtasks"]
    assert [s["isCompleted"] for s in stored] == [False, True]


@pytest.mark.asyncio
async def test_create_task_requires_title_and_course(make_protocol, store, session) -> None:
    proto = make_protocol()

    assert await proto.create_task(session, TaskDraft(title=" ", course="X", due_date="2025-01-01")) is None
    assert await proto.create_task(session, TaskDraft(title="T", course="", due_date="2025-01-01")) is None
    assert store.calls == []


@pytest.mark.asyncio
async def test_load_failure_is_distinguishable_from_empty(make_protocol, store, session) -> None:
    from unitrack.core.cache import LoadState

    proto = make_protocol()
    assert await proto.load_all(session) is True
    assert proto.cache.load_state is LoadState.READY
    assert proto.cache.tasks == ()

    await proto.create_task(session, essay())
    before = proto.cache.tasks
    store.fail_on("select", "tasks")

    assert await proto.load_all(session) is False
    assert proto.cache.load_state is LoadState.FAILED
    assert proto.cache.load_error is not None
    assert proto.cache.tasks == before


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ALL_DISCIPLINES)
async def test_note_lifecycle(make_protocol, store, session, discipline) -> None:
    proto = make_protocol(discipline)
    course = await proto.create_course(session, "PHYS", color="#10B981")
    assert course is not None and course.color == "#10B981"

    note = await proto.create_note(session, course.id, "Week 1", "Kinematics")
    assert note is not None

    edited = await proto.update_note(session, note.id, content="Kinematics and vectors")
    assert edited is not None
    assert proto.cache.notes[0].content == "Kinematics and vectors"

    reloaded = make_protocol(discipline)
    assert await reloaded.load_notes(session, course.id)
    assert [n.content for n in reloaded.cache.notes] == ["Kinematics and vectors"]

    assert await proto.delete_note(session, note.id) is True
    assert proto.cache.notes == ()
    assert await store.rows("notes") == []


@pytest.mark.asyncio
async def test_note_requires_known_course(make_protocol, store, session) -> None:
    proto = make_protocol()
    assert await proto.create_note(session, "no-such-course", "T", "C") is None
    assert store.calls == []


@pytest.mark.asyncio
async def test_failed_note_update_restores_previous_text(make_protocol, store, session) -> None:
    proto = make_protocol(Discipline.OPTIMISTIC)
    course = await proto.create_course(session, "PHYS")
    assert course is not None
    note = await proto.create_note(session, course.id, "Week 1", "Kinematics")
    assert note is not None
    store.fail_on("update", "notes")

    assert await proto.update_note(session, note.id, content="lost") is None
    assert proto.cache.notes[0] == note


@pytest.mark.asyncio
async def test_create_course_returns_existing_on_duplicate_name(make_protocol, store, session) -> None:
    proto = make_protocol()
    first = await proto.create_course(session, "Chemistry")
    second = await proto.create_course(session, "  chemistry ")

    assert first is not None and second == first
    assert len(store.calls_of("insert", "courses")) == 1


@pytest.mark.asyncio
async def test_unknown_status_is_reported_not_raised(make_protocol, store, session) -> None:
    proto = make_protocol()
    task = await proto.create_task(session, essay())
    assert task is not None
    store.calls.clear()

    assert await proto.set_task_status(session, task.id, "Done") is None

    assert store.calls == []
    assert proto.cache.tasks[0].status == TaskStatus.PENDING
    errors = proto.notifier.errors()
    assert len(errors) == 1
    assert "invalid status" in errors[0].message


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ALL_DISCIPLINES)
async def test_update_task_accepts_plain_string_enum_values(make_protocol, store, session, discipline) -> None:
    proto = make_protocol(discipline)
    task = await proto.create_task(session, essay())
    assert task is not None

    updated = await proto.update_task(session, task.id, priority="Low", status="Completed", type="Exam")

    assert updated is not None
    assert (updated.priority, updated.status, updated.type) == (Priority.LOW, TaskStatus.COMPLETED, TaskType.EXAM)
    assert proto.cache.tasks[0] == updated
    row = (await store.rows("tasks"))[0]
    assert (row["priority"], row["status"], row["type"]) == ("Low", "Completed", "Exam")
    assert proto.notifier.errors() == []


@pytest.mark.asyncio
async def test_update_task_rejects_unknown_priority(make_protocol, store, session) -> None:
    proto = make_protocol()
    task = await proto.create_task(session, essay())
    assert task is not None
    store.calls.clear()

    assert await proto.update_task(session, task.id, priority="Urgent") is None

    assert store.calls == []
    assert proto.cache.tasks[0].priority == Priority.HIGH
    assert "invalid priority" in proto.notifier.errors()[0].message
