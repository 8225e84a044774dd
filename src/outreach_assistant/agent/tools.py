# src/outreach_assistant/agent/tools.py

from __future__ import annotations

"""
Assistant tools exposed to the model.

Each tool is a (name, description, JSON schema, async handler) record in a small registry.
Handlers never raise into the agent loop: validation problems come back as {"error": ...}
results the model can read and react to.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from ..config import OutreachConfig
from ..core.identity import new_message_id
from ..core.ports import ContactDirectory, MessagingGateway, ToolCall, ToolSchema
from ..tasks.orchestrator import DEFAULT_KIND, TaskOrchestrator
from ..tasks.summary import summarize_task, target_label
from ..tasks.task_models import MessagingRecipient
from .safety import evaluate_outreach
from .scheduling import (
    ParticipantAvailability,
    SchedulingError,
    TimeWindow,
    build_calendar_event,
    clamp_duration,
    format_time,
    parse_time,
    parse_window,
    propose_slots,
    rank_availability,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ToolContext:
    """Who the loop is acting for."""

    owner_user_id: str
    conversation_id: str
    owner_name: str | None = None


@dataclass(slots=True)
class ToolCommand:
    """A parsed tool call: a call id, a tool name and decoded arguments."""

    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_call(cls, call: ToolCall) -> ToolCommand:
        args: Any
        try:
            args = json.loads(call.arguments or "{}")
        except (TypeError, ValueError):
            args = {}
        if not isinstance(args, dict):
            args = {}
        return cls(call_id=call.id, name=call.name, arguments=args)


ToolHandler = Callable[["AssistantToolbox", ToolContext, dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(slots=True, frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    @property
    def schema(self) -> ToolSchema:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


_TOOLS: dict[str, ToolSpec] = {}


def tool(name: str, description: str, parameters: dict[str, Any]) -> Callable[[ToolHandler], ToolHandler]:
    def decorator(fn: ToolHandler) -> ToolHandler:
        _TOOLS[name] = ToolSpec(name=name, description=description, parameters=parameters, handler=fn)
        return fn

    return decorator


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("1", "true", "yes", "y", "on"):
            return True
        if v in ("0", "false", "no", "n", "off"):
            return False
    return default


def _as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class AssistantToolbox:
    """Binds tool handlers to the orchestrator, gateway and contact directory."""

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        gateway: MessagingGateway,
        contacts: ContactDirectory | None = None,
        config: OutreachConfig | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.gateway = gateway
        self.contacts = contacts
        self.config = config or orchestrator.config

    def schemas(self) -> list[ToolSchema]:
        return [spec.schema for spec in _TOOLS.values()]

    def names(self) -> list[str]:
        return list(_TOOLS)

    async def execute(self, command: ToolCommand, ctx: ToolContext) -> dict[str, Any]:
        spec = _TOOLS.get(command.name)
        if spec is None:
            return {"error": f"Unknown tool: {command.name}"}
        try:
            return await spec.handler(self, ctx, command.arguments)
        except SchedulingError as exc:
            return {"error": str(exc)}
        except Exception as exc:
            logger.exception("Tool %s failed call_id=%s", command.name, command.call_id)
            return {"error": str(exc) or type(exc).__name__}


# ---- contacts / tasks ----


@tool(
    "list_contacts",
    "List the member's contacts. user_id values are private: use them in tool calls, "
    "never show them to the member.",
    {"type": "object", "properties": {}, "additionalProperties": False},
)
async def _list_contacts(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    if box.contacts is None:
        return {"contacts": []}
    contacts = await box.contacts.list_contacts(ctx.owner_user_id)
    return {
        "contacts": [
            {"user_id": c.user_id, "name": c.name}
            for c in contacts
            if c.user_id != ctx.owner_user_id
        ]
    }


@tool(
    "list_tasks",
    "List the member's outreach tasks with per-recipient status.",
    {
        "type": "object",
        "properties": {
            "include_completed": {
                "type": "boolean",
                "description": "Also include completed and canceled tasks.",
            },
            "limit": {"type": "integer", "minimum": 1, "maximum": 50},
        },
    },
)
async def _list_tasks(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    try:
        limit = max(1, min(50, int(args.get("limit") or 20)))
    except (TypeError, ValueError):
        limit = 20
    tasks = await box.orchestrator.list_tasks(
        ctx.owner_user_id,
        include_completed=_as_bool(args.get("include_completed")),
        limit=limit,
    )
    out = []
    for task in tasks:
        targets = await box.orchestrator.list_targets(task.id)
        out.append(summarize_task(task, targets))
    return {"tasks": out}


@tool(
    "get_task_status",
    "Get the status of one outreach task, including recipient replies.",
    {
        "type": "object",
        "properties": {"task_id": {"type": "string"}},
        "required": ["task_id"],
    },
)
async def _get_task_status(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    task_id = _as_str(args.get("task_id") or args.get("taskId"))
    if not task_id:
        return {"error": "task_id is required"}
    task = await box.orchestrator.get_task(task_id)
    if task is None or task.owner_user_id != ctx.owner_user_id:
        return {"error": "Task not found."}
    targets = await box.orchestrator.list_targets(task.id)
    return {"task": summarize_task(task, targets)}


@tool(
    "cancel_task",
    "Cancel an active outreach task. Recipients stop being tracked.",
    {
        "type": "object",
        "properties": {"task_id": {"type": "string"}},
        "required": ["task_id"],
    },
)
async def _cancel_task(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    task_id = _as_str(args.get("task_id") or args.get("taskId"))
    if not task_id:
        return {"error": "task_id is required"}
    res = await box.orchestrator.cancel_assistant_task(ctx.owner_user_id, task_id)
    if not res.ok:
        return {"ok": False, "status": res.status, "error": res.error}
    return {"ok": True, "task": {"id": task_id, "status": res.task.status.value if res.task else None}}


# ---- outreach ----


def _parse_recipients(raw: Any, owner_user_id: str, default_track: bool) -> list[MessagingRecipient]:
    out: list[MessagingRecipient] = []
    seen: set[str] = set()
    if not isinstance(raw, list):
        return out
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        user_id = _as_str(entry.get("user_id") or entry.get("userId"))
        if not user_id or user_id == owner_user_id or user_id in seen:
            continue
        seen.add(user_id)
        name = _as_str(entry.get("name") or entry.get("display_name") or entry.get("displayName")) or None

        track = default_track
        for key in ("track_responses", "trackResponses", "expect_reply", "expectReply"):
            if key in entry:
                track = _as_bool(entry[key], default_track)
                break

        context = entry.get("context")
        out.append(
            MessagingRecipient(
                user_id=user_id,
                name=name,
                track_responses=track,
                context=context if isinstance(context, dict) else None,
            )
        )
    return out


@tool(
    "send_messages",
    "Send a direct message from the member to one or more contacts and optionally track replies. "
    "Large or sensitive sends return confirmation_required until retried with confirmed=true "
    "after the member explicitly agrees.",
    {
        "type": "object",
        "properties": {
            "message": {"type": "string", "description": "Text to send to every recipient."},
            "recipients": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "user_id": {"type": "string"},
                        "name": {"type": "string"},
                        "track_responses": {"type": "boolean"},
                        "context": {"type": "object"},
                    },
                    "required": ["user_id"],
                },
            },
            "track_responses": {
                "type": "boolean",
                "description": "Default for recipients that do not set it.",
            },
            "kind": {"type": "string"},
            "confirmed": {"type": "boolean"},
        },
        "required": ["message", "recipients"],
    },
)
async def _send_messages(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    message = _as_str(args.get("message"))
    raw_recipients = args.get("recipients")
    if not message or not isinstance(raw_recipients, list) or not raw_recipients:
        return {"task": None, "error": "send_messages requires a non-empty message and at least one recipient."}

    default_track = _as_bool(args.get("track_responses") or args.get("expect_reply"))
    recipients = _parse_recipients(raw_recipients, ctx.owner_user_id, default_track=default_track)
    if not recipients:
        return {"task": None, "error": "No valid recipients resolved."}

    decision = evaluate_outreach(
        message,
        len(recipients),
        box.config,
        confirmed=_as_bool(args.get("confirmed")),
    )
    if not decision.allowed:
        logger.info(
            "Outreach blocked owner=%s error=%s recipients=%d",
            ctx.owner_user_id,
            decision.error,
            len(recipients),
        )
        return {
            "error": decision.error,
            "reason": decision.reason,
            "recipients": [r.name or f"Contact {i + 1}" for i, r in enumerate(recipients)],
            "limit": decision.limit,
        }

    orch = box.orchestrator
    created = await orch.create_messaging_task(
        owner_user_id=ctx.owner_user_id,
        recipients=recipients,
        prompt=message,
        kind=_as_str(args.get("kind")) or DEFAULT_KIND,
        payload={
            "recipients": [
                {"name": r.name or f"Contact {i + 1}", "track_responses": r.track_responses}
                for i, r in enumerate(recipients)
            ],
            "track_responses": default_track,
        },
        owner_name=ctx.owner_name,
    )

    results: list[dict[str, Any]] = []
    for i, target in enumerate(created.targets):
        label = target_label(target, i)
        try:
            message_id = await box.gateway.send_message(
                conversation_id=target.conversation_id,
                sender_id=ctx.owner_user_id,
                body=message,
            )
            await orch.mark_recipient_messaged(target, message_id or new_message_id())
            results.append({"name": label, "status": "sent", "expects_reply": target.tracked})
        except Exception as exc:
            logger.exception("Send failed task=%s target=%s", created.task.id, target.id)
            await orch.mark_recipient_failed(target, str(exc) or type(exc).__name__)
            results.append({"name": label, "status": "failed", "error": str(exc) or type(exc).__name__})

    task = await orch.refresh_task_status(created.task.id)
    return {
        "task": {"id": task.id, "title": task.title, "status": task.status.value},
        "results": results,
    }


# ---- meetings ----


def _windows(raw: Any) -> list[TimeWindow]:
    if not isinstance(raw, list) or not raw:
        raise SchedulingError("at least one time window is required")
    return [parse_window(w) for w in raw]


_WINDOW_SCHEMA = {
    "type": "object",
    "properties": {
        "start": {"type": "string", "description": "ISO-8601 start"},
        "end": {"type": "string", "description": "ISO-8601 end"},
    },
    "required": ["start", "end"],
}


@tool(
    "propose_meeting_slots",
    "Slice time windows into fixed-length meeting slots (default 30 minutes).",
    {
        "type": "object",
        "properties": {
            "windows": {"type": "array", "items": _WINDOW_SCHEMA},
            "duration_minutes": {"type": "integer", "minimum": 15, "maximum": 240},
            "max_suggestions": {"type": "integer", "minimum": 1, "maximum": 12},
        },
        "required": ["windows"],
    },
)
async def _propose_meeting_slots(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    duration = clamp_duration(args.get("duration_minutes"))
    slots = propose_slots(
        _windows(args.get("windows")),
        duration_minutes=duration,
        max_suggestions=args.get("max_suggestions"),
    )
    return {
        "duration_minutes": duration,
        "slots": [{"start": format_time(s.start), "end": format_time(s.end)} for s in slots],
    }


@tool(
    "collect_availability",
    "Rank meeting slots by how many participants are available.",
    {
        "type": "object",
        "properties": {
            "participants": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "user_id": {"type": "string"},
                        "windows": {"type": "array", "items": _WINDOW_SCHEMA},
                    },
                    "required": ["windows"],
                },
            },
            "duration_minutes": {"type": "integer", "minimum": 15, "maximum": 240},
            "max_suggestions": {"type": "integer", "minimum": 1, "maximum": 12},
        },
        "required": ["participants"],
    },
)
async def _collect_availability(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    raw = args.get("participants")
    if not isinstance(raw, list) or not raw:
        return {"error": "at least one participant is required"}

    participants: list[ParticipantAvailability] = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            continue
        participants.append(
            ParticipantAvailability(
                name=_as_str(entry.get("name")) or f"Participant {i + 1}",
                windows=tuple(_windows(entry.get("windows"))),
                user_id=_as_str(entry.get("user_id")) or None,
            )
        )
    if not participants:
        return {"error": "at least one participant is required"}

    duration = clamp_duration(args.get("duration_minutes"))
    ranked = rank_availability(
        participants,
        duration_minutes=duration,
        max_suggestions=args.get("max_suggestions"),
    )
    return {
        "duration_minutes": duration,
        "participants": len(participants),
        "slots": [
            {
                "start": format_time(r.slot.start),
                "end": format_time(r.slot.end),
                "available": list(r.available),
                "available_count": r.count,
            }
            for r in ranked
        ],
    }


@tool(
    "finalize_meeting",
    "Build a calendar invite for the chosen slot and optionally notify attendees by direct message.",
    {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "start": {"type": "string"},
            "end": {"type": "string"},
            "duration_minutes": {"type": "integer", "minimum": 15, "maximum": 240},
            "description": {"type": "string"},
            "location": {"type": "string"},
            "attendees": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"user_id": {"type": "string"}, "name": {"type": "string"}},
                },
            },
            "notify": {"type": "boolean"},
            "message": {"type": "string", "description": "Optional note sent with the invite."},
        },
        "required": ["title", "start"],
    },
)
async def _finalize_meeting(box: AssistantToolbox, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    start = parse_time(args.get("start"))
    if args.get("end"):
        end = parse_time(args.get("end"))
    else:
        end = start + timedelta(minutes=clamp_duration(args.get("duration_minutes")))

    attendees: list[dict[str, str]] = []
    seen: set[str] = set()
    for i, entry in enumerate(args.get("attendees") or []):
        if not isinstance(entry, dict):
            continue
        user_id = _as_str(entry.get("user_id") or entry.get("userId"))
        if user_id and (user_id == ctx.owner_user_id or user_id in seen):
            continue
        if user_id:
            seen.add(user_id)
        attendees.append({"user_id": user_id, "name": _as_str(entry.get("name")) or f"Guest {i + 1}"})

    event = build_calendar_event(
        title=_as_str(args.get("title")),
        start=start,
        end=end,
        attendees=attendees,
        description=_as_str(args.get("description")) or None,
        location=_as_str(args.get("location")) or None,
        organizer=ctx.owner_name,
    )

    notifications: list[dict[str, Any]] = []
    if _as_bool(args.get("notify")):
        note = _as_str(args.get("message"))
        body = "\n".join(
            line
            for line in (
                f"Meeting: {event['title']}",
                f"When: {event['start']} - {event['end']}",
                f"Where: {event['location']}" if event["location"] else "",
                note,
            )
            if line
        )
        for attendee in attendees:
            if not attendee["user_id"]:
                notifications.append({"name": attendee["name"], "status": "skipped"})
                continue
            try:
                await box.gateway.send_message(
                    conversation_id=box.orchestrator.conversation_for(ctx.owner_user_id, attendee["user_id"]),
                    sender_id=ctx.owner_user_id,
                    body=body,
                )
                notifications.append({"name": attendee["name"], "status": "sent"})
            except Exception as exc:
                logger.exception("Meeting notification failed uid=%s", event["uid"])
                notifications.append(
                    {"name": attendee["name"], "status": "failed", "error": str(exc) or type(exc).__name__}
                )

    return {"event": event, "notifications": notifications}
