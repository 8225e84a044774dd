# src/outreach_assistant/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the gateway/storage/LLM providers swappable and makes testing easier.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..tasks.task_models import MessagingTask, TargetData, TargetStatus, TaskStatus, TaskTarget

LLMMessage = dict[str, Any]
# OpenAI-style chat messages: {"role": "...", "content": "...", ["tool_calls"|"tool_call_id"]}.

ToolSchema = dict[str, Any]


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """A delivered chat message as seen by the gateway (body already decoded)."""

    id: str
    conversation_id: str
    sender_id: str
    body: str
    sent_at: float


@dataclass(slots=True, frozen=True)
class Contact:
    user_id: str
    name: str


@dataclass(slots=True, frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str = "{}"


@dataclass(slots=True)
class Completion:
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


class CompletionError(RuntimeError):
    """Raised by completion clients when no model produced a usable answer."""


class CompletionClient(Protocol):
    """Tool-capable chat completion client (OpenAI/OpenRouter-compatible)."""

    async def complete(self, messages: list[LLMMessage], tools: list[ToolSchema]) -> Completion: ...


class MessagingGateway(Protocol):
    """
    Delivers chat messages and reads conversation history.

    Body serialization, attachments and realtime fan-out belong to the gateway.
    """

    async def send_message(self, *, conversation_id: str, sender_id: str, body: str) -> str: ...

    async def get_conversation_history(
        self, *, conversation_id: str, limit: int = 30
    ) -> list[ChatMessage]: ...


class ContactDirectory(Protocol):
    async def list_contacts(self, owner_user_id: str) -> list[Contact]: ...


class TaskRepo(Protocol):
    """Persistence port for tasks and targets. Failures raise StoreError(message, code)."""

    # Tasks
    def insert_task(
        self,
        *,
        owner_user_id: str,
        assistant_user_id: str,
        kind: str,
        status: TaskStatus = ...,
        prompt: str | None = None,
        payload: dict[str, Any] | None = None,
        now_ts: float | None = None,
    ) -> MessagingTask: ...
    def get_task(self, task_id: str) -> MessagingTask | None: ...
    def require_task(self, task_id: str) -> MessagingTask: ...
    def update_task(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        result: dict[str, Any] | None = None,
        completed_at: Any = ...,
        now_ts: float | None = None,
    ) -> MessagingTask: ...
    def list_tasks_for_owner(
        self,
        owner_user_id: str,
        *,
        statuses: Iterable[TaskStatus] | None = None,
        limit: int = 50,
    ) -> list[MessagingTask]: ...
    def delete_task(self, task_id: str) -> int: ...

    # Targets
    def insert_targets(self, rows: list[Any], *, now_ts: float | None = None) -> list[TaskTarget]: ...
    def get_target(self, target_id: str) -> TaskTarget | None: ...
    def require_target(self, target_id: str) -> TaskTarget: ...
    def update_target(
        self,
        target_id: str,
        *,
        status: TargetStatus | None = None,
        message_id: str | None = None,
        last_response_message_id: str | None = None,
        last_response_at: float | None = None,
        data: TargetData | None = None,
        now_ts: float | None = None,
    ) -> TaskTarget: ...
    def list_targets_by_task(self, task_id: str) -> list[TaskTarget]: ...
    def list_targets_by_conversation(
        self,
        *,
        owner_user_id: str,
        conversation_id: str,
        statuses: Iterable[TargetStatus] | None = None,
    ) -> list[TaskTarget]: ...
    def list_stale_targets(
        self,
        *,
        status: TargetStatus,
        updated_before: float,
        limit: int = 50,
    ) -> list[TaskTarget]: ...
    def delete_targets_for_task(self, task_id: str) -> int: ...
