# src/outreach_assistant/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.state import AppState
from ..tasks.reminders import run_reminder_sweep
from ..tasks.summary import format_task_line, format_task_report
from ..tasks.task_models import MessagingTask, OpResult

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], str, CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

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

    async def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
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

        return await handler(state, args, user_id or state.owner_user_id, emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


async def _resolve_task(state: AppState, user_id: str, raw: str) -> MessagingTask | None:
    """Full id or a unique prefix of one of the user's tasks (as printed by /tasks)."""
    task = await state.orchestrator.get_task(raw)
    if task is not None:
        return task
    tasks = await state.orchestrator.list_tasks(user_id, include_completed=True, limit=200)
    matches = [t for t in tasks if t.id.startswith(raw)]
    return matches[0] if len(matches) == 1 else None


def _op_message(res: OpResult, done: str) -> str:
    if res.ok:
        return done
    return f"{res.error} (status {res.status})"


async def cmd_help(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    settings = state.settings
    active = await state.orchestrator.list_tasks(user_id, include_completed=False, limit=200)
    models = ", ".join(settings.llm_models)
    return (
        "Status:\n"
        f"  Acting as: {state.display_name(user_id)}\n"
        f"  LLM: {type(state.completion).__name__}\n"
        f"  Models (priority -> fallback): {models}\n"
        f"  Active tasks: {len(active)}\n"
        f"  Reminders: {'ON' if settings.reminders_enabled else 'OFF'} "
        f"(after {settings.outreach.reminder_threshold_hours:g}h)"
    )


async def cmd_contacts(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    contacts = await state.contacts.list_contacts(user_id)
    if not contacts:
        return "No contacts configured. Set OUTREACH_CONTACTS=id:Name,id2:Name2 in .env."
    lines = ["Contacts:"]
    lines += [f"  {c.name} ({c.user_id})" for c in contacts]
    return "\n".join(lines)


async def cmd_tasks(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    """
    /tasks      -> active tasks
    /tasks all  -> include completed and canceled
    """
    include_completed = bool(args) and args[0].lower() in ("all", "a")
    tasks = await state.orchestrator.list_tasks(user_id, include_completed=include_completed, limit=50)
    if not tasks:
        return "No tasks." if include_completed else "No active tasks."
    return "\n".join(["Tasks:", *(format_task_line(t) for t in tasks)])


async def cmd_task(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /task <id>"
    task = await _resolve_task(state, user_id, args[0])
    if task is None or task.owner_user_id != user_id:
        return "Task not found."
    targets = await state.orchestrator.list_targets(task.id)
    return format_task_report(task, targets)


async def cmd_cancel(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /cancel <id>"
    task = await _resolve_task(state, user_id, args[0])
    res = await state.orchestrator.cancel_assistant_task(user_id, task.id if task else args[0])
    return _op_message(res, "Task canceled.")


async def cmd_remove(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /remove <id>"
    task = await _resolve_task(state, user_id, args[0])
    res = await state.orchestrator.remove_assistant_task(user_id, task.id if task else args[0])
    return _op_message(res, f"Task removed ({res.removed} rows).")


async def cmd_sweep(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    """
    /sweep          -> run the reminder sweep with the configured threshold
    /sweep <hours>  -> override the staleness threshold (0 = everything awaiting)
    """
    hours: float | None = None
    if args:
        try:
            hours = float(args[0])
        except ValueError:
            return "Usage: /sweep [hours]"
    res = await run_reminder_sweep(state.orchestrator, state.gateway, threshold_hours=hours)
    return (
        f"Reminder sweep: examined={res.examined} sent={res.sent} "
        f"skipped={res.skipped} failed={res.failed}"
    )


async def cmd_as(state: AppState, args: list[str], user_id: str, emit: CommandEmitter | None = None) -> str:
    """
    /as <user_id> <text> -> deliver <text> from a contact to you (simulates a reply).
    """
    if len(args) < 2:
        return "Usage: /as <user_id> <text>"
    sender, text = args[0], " ".join(args[1:])
    if sender in (user_id, state.assistant_user_id):
        return "Pick a contact other than yourself and the assistant."

    conv_id = state.orchestrator.conversation_for(user_id, sender)
    msg = state.gateway.deliver(conversation_id=conv_id, sender_id=sender, body=text)
    handled = await state.service.handle_message(msg)
    if handled.notifications:
        return f"Delivered as {state.display_name(sender)} (captured {len(handled.notifications)} reply)."
    return f"Delivered as {state.display_name(sender)}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show current settings and active task count.")
registry.register("contacts", cmd_contacts, help_text="List configured contacts.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks | /tasks all.")
registry.register("task", cmd_task, help_text="Show one task with recipients: /task <id>.")
registry.register("cancel", cmd_cancel, help_text="Cancel an active task: /cancel <id>.")
registry.register("remove", cmd_remove, help_text="Delete a completed/canceled task: /remove <id>.")
registry.register("sweep", cmd_sweep, help_text="Run the reminder sweep now: /sweep [hours].")
registry.register("as", cmd_as, help_text="Reply as a contact: /as <user_id> <text>.")
