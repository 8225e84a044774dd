# src/outreach_assistant/core/service.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ..agent.loop import AgentLoop, AssistantContext, LoopOutcome
from ..tasks.orchestrator import TaskOrchestrator
from ..tasks.summary import format_response_update
from ..tasks.task_models import ResponseNotification
from .identity import conversation_peer
from .ports import ChatMessage, MessagingGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HandledMessage:
    """What happened to one incoming message."""

    loop: LoopOutcome | None = None
    notifications: list[ResponseNotification] = field(default_factory=list)


class AssistantService:
    """
    Entry point for every delivered chat message.

    - Messages to the assistant run the agent loop for the sender.
    - Messages between two members are checked against both participants' open tasks,
      and each captured reply is reported to that task's owner.
    """

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        gateway: MessagingGateway,
        loop: AgentLoop,
        *,
        display_names: dict[str, str] | None = None,
        peer_of: Callable[[str, str], str | None] = conversation_peer,
    ) -> None:
        self._orchestrator = orchestrator
        self._gateway = gateway
        self._loop = loop
        self._names = dict(display_names or {})
        self._peer_of = peer_of

    @property
    def assistant_user_id(self) -> str:
        return self._orchestrator.config.assistant_user_id

    async def handle_message(self, message: ChatMessage) -> HandledMessage:
        assistant = self.assistant_user_id
        if message.sender_id == assistant:
            return HandledMessage()

        peer = self._peer_of(message.conversation_id, message.sender_id)
        if peer is None:
            logger.debug("Ignoring message in unknown conversation=%s", message.conversation_id)
            return HandledMessage()

        if peer == assistant:
            outcome = await self._loop.run(
                AssistantContext(
                    owner_user_id=message.sender_id,
                    conversation_id=message.conversation_id,
                    latest_message=message,
                    owner_name=self._names.get(message.sender_id),
                )
            )
            return HandledMessage(loop=outcome)

        notifications: list[ResponseNotification] = []
        # Either participant may own a task waiting on the other one.
        for owner in (message.sender_id, peer):
            notifications += await self.handle_task_response(owner, message)
        return HandledMessage(notifications=notifications)

    async def handle_task_response(self, owner_user_id: str, message: ChatMessage) -> list[ResponseNotification]:
        targets = await self._orchestrator.find_awaiting_targets_for_conversation(
            owner_user_id=owner_user_id,
            conversation_id=message.conversation_id,
        )
        out: list[ResponseNotification] = []
        for target in targets:
            if target.target_user_id != message.sender_id:
                continue
            record = await self._orchestrator.record_recipient_response(
                target,
                message_id=message.id,
                body=message.body,
                received_at=message.sent_at,
            )
            if record is None:
                continue
            out.append(record)
            await self._notify_owner(record)
        return out

    async def _notify_owner(self, record: ResponseNotification) -> None:
        try:
            await self._gateway.send_message(
                conversation_id=self._orchestrator.conversation_for(record.owner_user_id, record.assistant_user_id),
                sender_id=record.assistant_user_id,
                body=format_response_update(record),
            )
        except Exception:
            logger.exception("Failed to notify owner=%s about task=%s", record.owner_user_id, record.task_id)
