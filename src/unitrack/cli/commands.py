# src/unitrack/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from ..config import save_remote_config
from ..core.cache import LoadState
from ..core.models import Course, Note, Priority, Task, TaskDraft, TaskStatus, TaskType
from ..core.state import AppState
from ..core.stats import summarize, tasks_for_course

CommandResult = str | Awaitable[str]
CommandHandler = Callable[[AppState, list[str]], CommandResult]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split(maxsplit=1)
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        rest = parts[1] if len(parts) > 1 else ""

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        result = handler(state, _split_args(rest))
        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _split_args(rest: str) -> list[str]:
    """Fields are separated by '|' when present (titles contain spaces), else by whitespace."""
    if "|" in rest:
        return [p.strip() for p in rest.split("|")]
    return rest.split()


def _short(entity_id: str) -> str:
    return entity_id[:8]


def _resolve(items: tuple, ref: str):
    """Find an entity by id or unique id prefix."""
    ref = ref.strip()
    if not ref:
        return None
    hits = [e for e in items if e.id == ref or e.id.startswith(ref)]
    return hits[0] if len(hits) == 1 else None


def _fmt_task(t: Task) -> str:
    mark = "x" if t.status == TaskStatus.COMPLETED else ("~" if t.status == TaskStatus.IN_PROGRESS else " ")
    done = sum(1 for s in t.subtasks if s.is_completed)
    steps = f" [{done}/{len(t.subtasks)} steps]" if t.subtasks else ""
    return f"[{mark}] {_short(t.id)} {t.due_date} {t.title} ({t.course}, {t.type}, {t.priority}){steps}"


def _fmt_course(c: Course) -> str:
    return f"{_short(c.id)} {c.name} {c.color}"


def _fmt_note(n: Note) -> str:
    return f"{_short(n.id)} {n.title}: {n.content[:60]}"


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    session = state.session
    stats = summarize(state.cache.tasks)
    lines = [
        "Status:",
        f"  Mode: {state.mode}",
        f"  Signed in: {session.owner_id if session else 'no'}",
        f"  Sync: {state.protocol.strategy.discipline.value}"
        f" (verify writes: {'on' if state.protocol.strategy.verify_writes else 'off'})",
        f"  Data: {state.cache.load_state.value}",
        f"  Tasks: {stats.total} total, {stats.pending} pending, {stats.completed} completed"
        f" ({stats.completion_rate}% done)",
    ]
    if stats.urgent:
        lines.append("  Up next:")
        lines.extend(f"    {_fmt_task(t)}" for t in stats.urgent)
    return "\n".join(lines)


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks           -> all tasks by due date
    /tasks <course>  -> tasks of one course
    """
    tasks = list(state.cache.tasks)
    if args:
        tasks = tasks_for_course(tasks, " ".join(args))
    if not tasks:
        return "Could not load tasks (see /reload)." if state.cache.load_state is LoadState.FAILED else "No tasks found."
    tasks.sort(key=lambda t: t.due_date)
    return "\n".join(_fmt_task(t) for t in tasks)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add title | course | YYYY-MM-DD [| priority [| type [| description [| step; step]]]]"""
    if len(args) < 3:
        return "Usage: /add title | course | YYYY-MM-DD [| Low/Medium/High [| type [| description]]]"
    draft = TaskDraft(title=args[0], course=args[1], due_date=args[2])
    if len(args) > 3 and args[3]:
        draft.priority = Priority.from_db(args[3].capitalize())
    if len(args) > 4 and args[4]:
        draft.type = TaskType.from_db(args[4].capitalize())
    if len(args) > 5:
        draft.description = args[5]
    if len(args) > 6:
        draft.subtask_titles = [s.strip() for s in args[6].split(";")]
    task = await state.protocol.create_task(state.session, draft)
    return f"Added: {_fmt_task(task)}" if task else "Task was not saved."


async def cmd_done(state: AppState, args: list[str]) -> str:
    task = _resolve(state.cache.tasks, args[0]) if args else None
    if task is None:
        return "Usage: /done <task id>"
    updated = await state.protocol.toggle_task_status(state.session, task.id)
    return f"Updated: {_fmt_task(updated)}" if updated else "Status was not changed."


async def cmd_set(state: AppState, args: list[str]) -> str:
    """/set <task id> <Pending|In Progress|Completed>"""
    if len(args) < 2:
        return "Usage: /set <task id> <Pending|In Progress|Completed>"
    task = _resolve(state.cache.tasks, args[0])
    raw = " ".join(args[1:]).strip().lower()
    status = next((s for s in TaskStatus if s.value.lower() == raw), None)
    if task is None or status is None:
        return "Usage: /set <task id> <Pending|In Progress|Completed>"
    updated = await state.protocol.set_task_status(state.session, task.id, status)
    return f"Updated: {_fmt_task(updated)}" if updated else "Status was not changed."


async def cmd_step(state: AppState, args: list[str]) -> str:
    """/step <task id> <step number>"""
    task = _resolve(state.cache.tasks, args[0]) if args else None
    if task is None or len(args) < 2 or not args[1].isdigit():
        return "Usage: /step <task id> <step number>"
    idx = int(args[1]) - 1
    if not 0 <= idx < len(task.subtasks):
        return f"Task has {len(task.subtasks)} steps."
    updated = await state.protocol.toggle_subtask(state.session, task.id, task.subtasks[idx].id)
    return f"Updated: {_fmt_task(updated)}" if updated else "Step was not changed."


def cmd_rm(state: AppState, args: list[str]) -> str:
    task = _resolve(state.cache.tasks, args[0]) if args else None
    if task is None or not state.protocol.request_delete(task.id):
        return "Usage: /rm <task id>"
    return f"Delete {task.title!r}? Answer /yes or /no."


async def cmd_yes(state: AppState, args: list[str]) -> str:
    if state.protocol.pending_delete is None:
        return "Nothing to confirm."
    ok = await state.protocol.confirm_delete(state.session)
    return "Deleted." if ok else "Task was not deleted."


def cmd_no(state: AppState, args: list[str]) -> str:
    state.protocol.cancel_delete()
    return "Cancelled."


async def cmd_course(state: AppState, args: list[str]) -> str:
    """
    /course              -> list courses
    /course add <name> [| color]
    /course rm <id>
    """
    if not args:
        if not state.cache.courses:
            return "No courses yet."
        return "\n".join(_fmt_course(c) for c in state.cache.courses)

    sub, _, rest = args[0].partition(" ")
    sub = sub.lower()
    fields = [rest.strip(), *args[1:]] if rest.strip() else args[1:]

    if sub == "add" and fields:
        color = fields.pop() if len(fields) > 1 and fields[-1].startswith("#") else None
        course = await state.protocol.create_course(state.session, " ".join(fields), color=color)
        return f"Course: {_fmt_course(course)}" if course else "Course was not saved."

    if sub == "rm" and fields:
        course = _resolve(state.cache.courses, fields[0])
        if course is None:
            return "Unknown course."
        ok = await state.protocol.delete_course(state.session, course.id)
        return "Course deleted." if ok else "Course was not deleted."

    return "Usage: /course | /course add <name> [| color] | /course rm <id>"


async def cmd_note(state: AppState, args: list[str]) -> str:
    """
    /note <course id>                      -> list notes of a course
    /note add <course id> | title | content
    /note edit <note id> | title | content
    /note rm <note id>
    """
    if not args:
        return "Usage: /note <course id> | /note add <course id> | title | content | /note rm <note id>"

    sub, _, rest = args[0].partition(" ")
    fields = [rest.strip(), *args[1:]] if rest.strip() else args[1:]
    sub = sub.lower()

    if sub == "add" and len(fields) >= 3:
        course = _resolve(state.cache.courses, fields[0])
        if course is None:
            return "Unknown course."
        note = await state.protocol.create_note(state.session, course.id, fields[1], fields[2])
        return f"Note saved: {_fmt_note(note)}" if note else "Note was not saved."

    if sub == "edit" and len(fields) >= 3:
        note = _resolve(state.cache.notes, fields[0])
        if note is None:
            return "Unknown note."
        updated = await state.protocol.update_note(state.session, note.id, title=fields[1], content=fields[2])
        return f"Note saved: {_fmt_note(updated)}" if updated else "Note was not saved."

    if sub == "rm" and fields:
        note = _resolve(state.cache.notes, fields[0])
        if note is None:
            return "Unknown note."
        ok = await state.protocol.delete_note(state.session, note.id)
        return "Note deleted." if ok else "Note was not deleted."

    course = _resolve(state.cache.courses, args[0])
    if course is None:
        return "Unknown course."
    if not await state.protocol.load_notes(state.session, course.id):
        return "Could not load notes."
    notes = [n for n in state.cache.notes if n.course_id == course.id]
    if not notes:
        return f"No notes for {course.name}."
    return "\n".join(_fmt_note(n) for n in notes)


async def cmd_reload(state: AppState, args: list[str]) -> str:
    ok = await state.protocol.load_all(state.session)
    return f"Loaded {len(state.cache.tasks)} tasks, {len(state.cache.courses)} courses." if ok else "Reload failed."


async def cmd_signout(state: AppState, args: list[str]) -> str:
    await state.sessions.sign_out()
    return "Signed out."


def cmd_config(state: AppState, args: list[str]) -> str:
    """/config <supabase url> <anon key>: persist remote settings for the next start."""
    if len(args) != 2:
        return "Usage: /config <supabase url> <anon key>"
    save_remote_config(state.settings.remote_config_path, url=args[0], anon_key=args[1])
    return "Remote config saved. Restart to use it (environment variables still take precedence)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Mode, sync settings and progress overview.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [course].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add title | course | YYYY-MM-DD [| priority [| type]].")
registry.register("done", cmd_done, help_text="Toggle a task between Pending and Completed.")
registry.register("set", cmd_set, help_text="Set task status: /set <id> <Pending|In Progress|Completed>.")
registry.register("step", cmd_step, help_text="Toggle a task step: /step <id> <n>.")
registry.register("rm", cmd_rm, help_text="Delete a task (asks for confirmation).")
registry.register("yes", cmd_yes, help_text="Confirm the pending delete.", aliases=["y"])
registry.register("no", cmd_no, help_text="Cancel the pending delete.", aliases=["n"])
registry.register("course", cmd_course, help_text="Courses: /course | /course add <name> | /course rm <id>.")
registry.register("note", cmd_note, help_text="Notes: /note <course> | /note add|edit|rm ...")
registry.register("reload", cmd_reload, help_text="Fetch everything from the store again.")
registry.register("signout", cmd_signout, help_text="Sign out and clear local state.")
registry.register("config", cmd_config, help_text="Save remote store settings: /config <url> <anon key>.")
