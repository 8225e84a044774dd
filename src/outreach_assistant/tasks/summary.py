# src/outreach_assistant/tasks/summary.py

from __future__ import annotations

"""
Human-readable reporting over tasks and targets.

Everything produced here may be shown to a member or fed to the model as tool output,
so recipients are referred to by display name only, never by raw user id.
"""

from datetime import UTC, datetime
from typing import Any

from .task_models import (
    MessagingTask,
    ResponseNotification,
    TargetRole,
    TargetStatus,
    TaskTarget,
)


def _format_utc_ts(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(float(ts), tz=UTC).strftime("%Y-%m-%d %H:%M UTC")


def _plural(n: int, one: str, many: str) -> str:
    return one if n == 1 else many


def target_label(target: TaskTarget, index: int = 0) -> str:
    if target.data.name:
        return target.data.name
    context = target.data.context or {}
    for key in ("label", "display_name", "displayName", "name", "title"):
        value = context.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return f"Contact {index + 1}"


def format_response_update(record: ResponseNotification) -> str:
    """Update posted to the owner when a tracked recipient replies."""
    lines = record.snippet.split("\n")
    cited = lines[0].strip() if lines else record.snippet.strip()
    if record.outstanding_count > 0:
        remaining = (
            f"Still waiting on {record.outstanding_count} "
            f"{_plural(record.outstanding_count, 'response', 'responses')}."
        )
    else:
        remaining = "That's everyone!"
    return "\n".join([f"Update from {record.target_name or 'a contact'}:", f"> {cited}", remaining])


def format_reminder(task: MessagingTask, target: TaskTarget) -> str:
    """
    Reminder text for a stale target.

    Primary targets remind the owner that a recipient has not answered yet.
    Mirror targets remind the recipient that the originator is waiting on them.
    """
    title = task.title or "your request"
    if target.data.role == TargetRole.MIRROR:
        who = target.data.originator_name or target.data.name or "Someone"
        return f"Reminder: {who} is still waiting for your reply about \"{title}\"."
    who = target_label(target)
    return f"Reminder: no reply yet from {who} about \"{title}\". I'll keep watching the thread."


def summarize_task(task: MessagingTask, targets: list[TaskTarget]) -> dict[str, Any]:
    """Structured task summary without raw identifiers (safe for tool output)."""
    recipients: list[dict[str, Any]] = []
    counts: dict[str, int] = {s.value: 0 for s in TargetStatus}
    for i, target in enumerate(targets):
        counts[target.status.value] += 1
        last = target.data.responses[-1] if target.data.responses else None
        recipients.append(
            {
                "name": target_label(target, i),
                "status": target.status.value,
                "expects_reply": target.tracked,
                "responded": target.status == TargetStatus.RESPONDED,
                "last_response": last.message if last else None,
                "last_response_at": _format_utc_ts(last.received_at) if last else None,
                "reminders_sent": target.data.reminder_count,
            }
        )
    return {
        "id": task.id,
        "title": task.title,
        "kind": task.kind,
        "status": task.status.value,
        "created_at": _format_utc_ts(task.created_at),
        "completed_at": _format_utc_ts(task.completed_at),
        "recipients": recipients,
        "counts": {k: v for k, v in counts.items() if v},
    }


def format_task_line(task: MessagingTask) -> str:
    created = _format_utc_ts(task.created_at) or "unknown"
    kind = task.kind.replace("_", " ")
    status = task.status.value.replace("_", " ")
    return f"- [{task.id[:8]}] {task.title or 'Assistant task'} ({kind}, {status}, created {created})"


def format_task_report(task: MessagingTask, targets: list[TaskTarget]) -> str:
    lines = [
        f"Task {task.id[:8]}: {task.title or 'Assistant task'}",
        f"  Status: {task.status.value.replace('_', ' ')}",
    ]
    requested = task.payload.get("recipients") if task.payload else None
    if isinstance(requested, list) and requested:
        expecting = sum(1 for r in requested if isinstance(r, dict) and r.get("track_responses"))
        lines.append(
            f"  Requested: {len(requested)} {_plural(len(requested), 'recipient', 'recipients')}, "
            f"{expecting} expecting a reply"
        )
    if not targets:
        lines.append("  No recipients are attached to this task.")
        return "\n".join(lines)

    lines.append("  Recipients:")
    for i, target in enumerate(targets):
        line = f"    - {target_label(target, i)}: {target.status.value.replace('_', ' ')}"
        if target.data.responses:
            line += f' ("{target.data.responses[-1].message.splitlines()[0]}")'
        if target.data.errors:
            line += f" [error: {target.data.errors[-1]}]"
        lines.append(line)
    return "\n".join(lines)
