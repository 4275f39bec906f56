# src/donelist/cli/commands.py

from __future__ import annotations

import base64
import inspect
import logging
import mimetypes
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import cast

from ..core.errors import OperationError, ValidationError
from ..core.state import AppState
from ..tasks.task_entity import split_deadline
from ..tasks.task_models import Attachment, Task, TaskInput, TaskPatch
from ..tasks.task_views import FilterMode, format_deadline, is_overdue

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, ...)."""

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

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Validation and store failures become replies; the user can retry.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except ValidationError as e:
            return f"Invalid input: {e}"
        except OperationError as e:
            return f"Sorry, that did not go through ({e}). Please try again."

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _run(state: AppState, coro):
    if state.runner is None:
        coro.close()
        raise OperationError("engine", "task engine is not running")
    try:
        return state.runner.run(coro)
    except TimeoutError as e:
        # The coroutine keeps running on the engine loop; it may still land.
        raise OperationError("engine", "engine busy, result unknown") from e


def _split_fields(args: list[str]) -> list[str]:
    return [p.strip() for p in " ".join(args).split("|")]


def resolve_task(state: AppState, ref: str) -> Task:
    """
    Find a task by its 1-based position in the current view, or by id prefix.
    """
    ref = (ref or "").strip().lstrip("#")
    if not ref:
        raise ValidationError("task reference is required", field="task")

    if ref.isdigit():
        visible = state.current_view().tasks
        idx = int(ref)
        if 1 <= idx <= len(visible):
            return visible[idx - 1]

    matches = [t for t in state.snapshot() if t.id and t.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"task reference {ref!r} is ambiguous", field="task")
    raise ValidationError(f"no task matches {ref!r}", field="task")


def attachment_from_path(path: str | Path, *, max_bytes: int) -> Attachment:
    """Read a local file into a blob descriptor. The size check happens before reading."""
    p = Path(path).expanduser()
    if not p.is_file():
        raise ValidationError(f"file not found: {p}", field="attachment")

    size = p.stat().st_size
    if size > max_bytes:
        raise ValidationError(
            f"attachment is too large ({size} bytes, limit {max_bytes})",
            field="attachment",
        )

    mime, _ = mimetypes.guess_type(p.name)
    data = base64.b64encode(p.read_bytes()).decode("ascii")
    return Attachment(name=p.name, type=mime or "application/octet-stream", size=size, data=data)


def format_task_line(index: int, task: Task, now: datetime) -> str:
    box = "x" if task.is_completed else " "
    star = "*" if task.is_important else " "
    line = f"{index:>3}. [{box}]{star} {task.title}"

    due = format_deadline(task.deadline, now)
    if due:
        line += f"  ({due}{', overdue' if is_overdue(task, now) else ''})"
    if task.attachment is not None:
        line += f"  +{task.attachment.name}"
    if task.id:
        line += f"  #{task.id[:6]}"
    return line


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    counts = state.current_view().counts
    who = state.owner_email or state.owner_id
    return (
        "Status:\n"
        f"  Signed in as: {who}\n"
        f"  Tasks: {counts.all} active, {counts.archive} archived\n"
        f"  Archive after: {getattr(settings, 'archival_delay_seconds', 0):.0f}s\n"
        f"  Sweep every: {getattr(settings, 'sweep_interval_seconds', 0):.0f}s\n"
        f"  View: {state.filter_mode.label}"
        + (f" / search {state.search_query!r}" if state.search_query else "")
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list          -> current view
    /list <filter> -> switch filter, then list
    """
    if args:
        state.filter_mode = FilterMode.parse(args[0])

    if not state.loaded:
        return "Loading tasks..."

    view = state.current_view()
    now = datetime.now()

    header = f"{view.mode.label} Tasks ({len(view.tasks)})"
    if view.query:
        header += f" matching {view.query!r}"

    if not view.tasks:
        if view.mode is FilterMode.ALL and not view.query:
            return f"{header}\n  No tasks found. Get started with /add."
        return f"{header}\n  No {view.mode.label.lower()} tasks available."

    lines = [header]
    for i, task in enumerate(view.tasks, start=1):
        lines.append(format_task_line(i, task, now))
    return "\n".join(lines)


def cmd_filter(state: AppState, args: list[str]) -> str:
    if not args:
        counts = state.current_view().counts
        lines = ["Filters:"]
        for mode in FilterMode:
            mark = ">" if mode is state.filter_mode else " "
            lines.append(f" {mark} {mode.value:<10} {counts.for_mode(mode)}")
        return "\n".join(lines)

    state.filter_mode = FilterMode.parse(args[0])
    return cmd_list(state, [])


def cmd_search(state: AppState, args: list[str]) -> str:
    state.search_query = " ".join(args).strip()
    return cmd_list(state, [])


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title> | <description> | <YYYY-MM-DD> [| <HH:MM>] [| !]
    """
    fields = _split_fields(args)
    if len(fields) < 3:
        return "Usage: /add <title> | <description> | <YYYY-MM-DD> [| <HH:MM>] [| !]"

    important = False
    if fields[-1] == "!":
        important = True
        fields = fields[:-1]

    task_input = TaskInput(
        title=fields[0],
        description=fields[1],
        date=fields[2],
        time=fields[3] if len(fields) > 3 else "",
        is_important=important,
    )
    task_id = _run(state, state.service.create_task(state.owner_id, task_input))
    return f"Task created #{task_id[:6]}."


_EDITABLE = ("title", "description", "date", "time")


def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <task> <title|description|date|time> <value...>
    /edit <task>  -> show current values
    """
    if not args:
        return f"Usage: /edit <task> <{'|'.join(_EDITABLE)}> <value>"

    task = resolve_task(state, args[0])
    if len(args) == 1:
        date_s, time_s = split_deadline(task.deadline)
        return (
            f"Edit #{(task.id or '')[:6]}:\n"
            f"  title: {task.title}\n"
            f"  description: {task.description}\n"
            f"  date: {date_s}\n"
            f"  time: {time_s}"
        )

    field_name = args[1].lower()
    if field_name not in _EDITABLE:
        return f"Usage: /edit <task> <{'|'.join(_EDITABLE)}> <value>"

    value = " ".join(args[2:])
    patch = TaskPatch(**{field_name: value})
    step = _run(state, state.service.update_task(task, patch))
    return "Task updated." if step.changed else "Nothing to change."


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task>"
    task = resolve_task(state, args[0])
    if task.is_completed:
        return "Task is already completed."
    _run(state, state.service.toggle_completed(task))
    return f"Completed: {task.title}"


def cmd_undo(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /undo <task>"
    task = resolve_task(state, args[0])
    if not task.is_completed:
        return "Task is already pending."
    _run(state, state.service.toggle_completed(task))
    return f"Back to pending: {task.title}"


def cmd_star(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /star <task>"
    task = resolve_task(state, args[0])
    _run(state, state.service.toggle_important(task))
    return f"{'Unmarked' if task.is_important else 'Marked'} important: {task.title}"


def cmd_attach(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /attach <task> <path>"
    task = resolve_task(state, args[0])
    attachment = attachment_from_path(
        " ".join(args[1:]),
        max_bytes=state.service.max_attachment_bytes,
    )
    _run(state, state.service.attach(task, attachment))
    kind = "image preview" if attachment.is_image else "download"
    return f"Attached {attachment.name} ({attachment.size} bytes, {kind})."


def cmd_rm(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    if not args:
        return "Usage: /rm <task>"
    task = resolve_task(state, args[0])
    if emit:
        emit(f"Deleting {task.title}...")
    _run(state, state.service.delete_task(task))
    return "Task deleted."


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = state.current_view().stats
    lines = [
        "Task Overview:",
        f"  Total:     {stats.total}",
        f"  Completed: {stats.completed} ({stats.completed_percent:.0f}%)",
        f"  Pending:   {stats.pending} ({stats.pending_percent:.0f}%)",
        f"  Important: {stats.important} ({stats.important_percent:.0f}%)",
    ]
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show account, timings and current view.")
registry.register("list", cmd_list, help_text="List tasks: /list [all|pending|completed|important|archive].", aliases=["ls"])
registry.register("filter", cmd_filter, help_text="Switch view filter (no args: show badge counts).")
registry.register("search", cmd_search, help_text="Search title/description: /search <text> (empty clears).")
registry.register("add", cmd_add, help_text="Create: /add title | description | YYYY-MM-DD [| HH:MM] [| !].")
registry.register("edit", cmd_edit, help_text="Edit: /edit <task> <title|description|date|time> <value>.")
registry.register("done", cmd_done, help_text="Mark a task completed: /done <task>.")
registry.register("undo", cmd_undo, help_text="Move a task back to pending: /undo <task>.")
registry.register("star", cmd_star, help_text="Toggle important: /star <task>.")
registry.register("attach", cmd_attach, help_text="Attach a file (images preview inline): /attach <task> <path>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task>.", aliases=["delete"])
registry.register("stats", cmd_stats, help_text="Show the task overview.")
