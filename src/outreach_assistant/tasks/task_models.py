# src/outreach_assistant/tasks/task_models.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 160
SNIPPET_MAX_CHARS = 360


class TaskStatus(StrEnum):
    """
    Aggregate status of a messaging task.

    Notes:
    - "messaging" is the creation-time status, before any delivery attempt settles.
    - completed/partial/canceled are terminal.
    """

    MESSAGING = "messaging"
    PENDING = "pending"
    AWAITING_RESPONSES = "awaiting_responses"
    PARTIAL = "partial"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TASK_STATUSES


class TargetStatus(StrEnum):
    PENDING = "pending"
    AWAITING_RESPONSE = "awaiting_response"
    RESPONDED = "responded"
    FAILED = "failed"
    CANCELED = "canceled"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TargetStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TARGET_STATUSES


TERMINAL_TASK_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.PARTIAL, TaskStatus.CANCELED}
)
TERMINAL_TARGET_STATUSES = frozenset(
    {TargetStatus.RESPONDED, TargetStatus.FAILED, TargetStatus.CANCELED, TargetStatus.COMPLETED}
)


class TargetRole(StrEnum):
    PRIMARY = "primary"
    MIRROR = "mirror"


@dataclass(slots=True, frozen=True)
class TargetResponse:
    message_id: str
    message: str
    received_at: float

    @classmethod
    def from_raw(cls, raw: Any) -> TargetResponse | None:
        if not isinstance(raw, dict):
            return None
        message_id = raw.get("message_id", raw.get("messageId"))
        message = raw.get("message")
        received_at = raw.get("received_at", raw.get("receivedAt"))
        if not isinstance(message_id, str) or not message_id:
            return None
        if not isinstance(message, str) or not message:
            return None
        if isinstance(received_at, bool) or not isinstance(received_at, (int, float)):
            return None
        return cls(message_id=message_id, message=message, received_at=float(received_at))

    def to_raw(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "message": self.message,
            "received_at": self.received_at,
        }


@dataclass(slots=True)
class TargetData:
    """
    Per-target extension blob.

    Stored as JSON, parsed here at the persistence boundary: unknown keys are dropped,
    malformed list entries are discarded. `errors` and `responses` are append-only.
    """

    role: TargetRole = TargetRole.PRIMARY
    name: str | None = None
    track_responses: bool = False
    context: dict[str, Any] | None = None
    mirror_task_id: str | None = None
    originator_user_id: str | None = None
    originator_name: str | None = None
    errors: list[str] = field(default_factory=list)
    responses: list[TargetResponse] = field(default_factory=list)
    reminded_at: float | None = None
    reminder_count: int = 0

    @classmethod
    def from_raw(cls, raw: Any) -> TargetData:
        data = cls()
        if not isinstance(raw, dict):
            if raw is not None:
                logger.warning("Target data is not an object (%s); using defaults", type(raw).__name__)
            return data

        role = raw.get("role")
        if role == TargetRole.MIRROR.value:
            data.role = TargetRole.MIRROR

        name = raw.get("name")
        if isinstance(name, str) and name.strip():
            data.name = name.strip()

        track = raw.get("track_responses", raw.get("trackResponses"))
        if isinstance(track, bool):
            data.track_responses = track

        context = raw.get("context")
        if isinstance(context, dict):
            data.context = context

        mirror = raw.get("mirror_task_id", raw.get("mirrorTaskId"))
        if isinstance(mirror, str) and mirror:
            data.mirror_task_id = mirror

        originator = raw.get("originator_user_id")
        if isinstance(originator, str) and originator:
            data.originator_user_id = originator
        originator_name = raw.get("originator_name")
        if isinstance(originator_name, str) and originator_name.strip():
            data.originator_name = originator_name.strip()

        errors = raw.get("errors")
        if isinstance(errors, list):
            data.errors = [e for e in errors if isinstance(e, str) and e.strip()]

        responses = raw.get("responses")
        if isinstance(responses, list):
            parsed = (TargetResponse.from_raw(r) for r in responses)
            data.responses = [r for r in parsed if r is not None]

        reminded_at = raw.get("reminded_at")
        if isinstance(reminded_at, (int, float)) and not isinstance(reminded_at, bool):
            data.reminded_at = float(reminded_at)

        count = raw.get("reminder_count")
        if isinstance(count, int) and not isinstance(count, bool) and count > 0:
            data.reminder_count = count

        return data

    def to_raw(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "role": self.role.value,
            "track_responses": self.track_responses,
        }
        if self.name:
            payload["name"] = self.name
        if self.context:
            payload["context"] = self.context
        if self.mirror_task_id:
            payload["mirror_task_id"] = self.mirror_task_id
        if self.originator_user_id:
            payload["originator_user_id"] = self.originator_user_id
        if self.originator_name:
            payload["originator_name"] = self.originator_name
        if self.errors:
            payload["errors"] = list(self.errors)
        if self.responses:
            payload["responses"] = [r.to_raw() for r in self.responses]
        if self.reminded_at is not None:
            payload["reminded_at"] = self.reminded_at
        if self.reminder_count:
            payload["reminder_count"] = self.reminder_count
        return payload

    def copy(self) -> TargetData:
        return TargetData.from_raw(self.to_raw())


@dataclass(slots=True)
class MessagingTask:
    id: str
    owner_user_id: str
    assistant_user_id: str
    kind: str
    status: TaskStatus
    prompt: str | None
    payload: dict[str, Any]
    result: dict[str, Any]
    created_at: float
    updated_at: float
    completed_at: float | None = None

    @property
    def title(self) -> str:
        stored = self.payload.get("title") if self.payload else None
        if isinstance(stored, str) and stored:
            return stored
        return derive_title(self.prompt)


@dataclass(slots=True)
class TaskTarget:
    id: str
    task_id: str
    owner_user_id: str
    target_user_id: str
    conversation_id: str
    status: TargetStatus
    data: TargetData
    created_at: float
    updated_at: float
    message_id: str | None = None
    last_response_message_id: str | None = None
    last_response_at: float | None = None

    @property
    def tracked(self) -> bool:
        return self.data.track_responses


@dataclass(slots=True)
class MessagingRecipient:
    user_id: str
    name: str | None = None
    track_responses: bool = False
    context: dict[str, Any] | None = None


@dataclass(slots=True)
class CreatedTask:
    """A freshly created task, its primary targets, and the mirror tasks keyed by recipient."""

    task: MessagingTask
    targets: list[TaskTarget]
    mirrors: dict[str, MessagingTask] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ResponseNotification:
    owner_user_id: str
    assistant_user_id: str
    target_user_id: str
    target_name: str | None
    task_id: str
    snippet: str
    outstanding_count: int


@dataclass(slots=True, frozen=True)
class OpResult:
    """Typed outcome for ownership/state checked operations (never raised)."""

    ok: bool
    status: int
    error: str | None = None
    task: MessagingTask | None = None
    removed: int = 0

    @classmethod
    def success(cls, *, task: MessagingTask | None = None, removed: int = 0) -> OpResult:
        return cls(ok=True, status=200, task=task, removed=removed)

    @classmethod
    def failure(cls, status: int, error: str) -> OpResult:
        return cls(ok=False, status=status, error=error)


def derive_title(prompt: str | None) -> str:
    """First non-empty line of the prompt, clipped to TITLE_MAX_CHARS."""
    for line in (prompt or "").splitlines():
        line = line.strip()
        if line:
            return line[:TITLE_MAX_CHARS]
    return ""


def make_snippet(body: str) -> str:
    return (body or "")[:SNIPPET_MAX_CHARS].strip()
