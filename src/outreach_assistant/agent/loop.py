# src/outreach_assistant/agent/loop.py

from __future__ import annotations

"""
Tool-use agent loop for the owner <-> assistant conversation.

One run:
- seeds the model with the persona prompt and the recent conversation,
- alternates completion calls and tool execution for a bounded number of iterations,
- falls back to a canned reply when the model fails, loops too long or returns nothing,
- posts the final reply into the conversation as the assistant.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..config import OutreachConfig
from ..core.ports import ChatMessage, CompletionClient, CompletionError, LLMMessage, MessagingGateway
from .persona import get_system_prompt
from .tools import AssistantToolbox, ToolCommand, ToolContext

logger = logging.getLogger(__name__)

ERROR_FALLBACK = (
    "I ran into an issue while thinking through that. Try again in a bit and I'll take another swing."
)
EMPTY_FALLBACK = (
    "I'm here and ready to help. Let me know if you'd like me to follow up or try something different."
)
UNEXPECTED_FALLBACK = "I hit an unexpected issue. Please try again in a moment."


class LoopState(StrEnum):
    DRAFTING = "drafting"
    AWAITING_TOOL_RESULT = "awaiting_tool_result"
    DONE = "done"


@dataclass(slots=True, frozen=True)
class AssistantContext:
    owner_user_id: str
    conversation_id: str
    latest_message: ChatMessage
    owner_name: str | None = None


@dataclass(slots=True)
class LoopOutcome:
    reply: str
    iterations: int = 0
    fallback: bool = False
    state: LoopState = LoopState.DONE
    tool_calls: list[str] = field(default_factory=list)
    message_id: str | None = None


def _dump(result: Any) -> str:
    return json.dumps(result, ensure_ascii=False, default=str)


class AgentLoop:
    def __init__(
        self,
        completion: CompletionClient,
        gateway: MessagingGateway,
        toolbox: AssistantToolbox,
        config: OutreachConfig | None = None,
    ) -> None:
        self._completion = completion
        self._gateway = gateway
        self._toolbox = toolbox
        self._config = config or toolbox.config

    async def run(self, ctx: AssistantContext) -> LoopOutcome:
        """Draft a reply and post it as the assistant. Never raises."""
        try:
            outcome = await self._draft(ctx)
        except Exception:
            logger.exception("Assistant loop crashed conversation=%s", ctx.conversation_id)
            outcome = LoopOutcome(reply=UNEXPECTED_FALLBACK, fallback=True)

        try:
            outcome.message_id = await self._gateway.send_message(
                conversation_id=ctx.conversation_id,
                sender_id=self._config.assistant_user_id,
                body=outcome.reply,
            )
        except Exception:
            logger.exception("Failed to deliver assistant reply conversation=%s", ctx.conversation_id)
        return outcome

    async def build_messages(self, ctx: AssistantContext) -> list[LLMMessage]:
        limit = max(1, self._config.max_history_messages)
        history = await self._gateway.get_conversation_history(
            conversation_id=ctx.conversation_id,
            limit=limit,
        )
        history = list(history)[-limit:]

        messages: list[LLMMessage] = [
            {"role": "system", "content": get_system_prompt(self._config.assistant_display_name)}
        ]
        for msg in history:
            body = (msg.body or "").strip()
            if not body:
                continue
            role = "user" if msg.sender_id == ctx.owner_user_id else "assistant"
            messages.append({"role": role, "content": body})

        latest = ctx.latest_message
        if latest.body.strip() and all(m.id != latest.id for m in history):
            messages.append({"role": "user", "content": latest.body.strip()})
        return messages

    async def _draft(self, ctx: AssistantContext) -> LoopOutcome:
        messages = await self.build_messages(ctx)
        tools = self._toolbox.schemas()
        tool_ctx = ToolContext(
            owner_user_id=ctx.owner_user_id,
            conversation_id=ctx.conversation_id,
            owner_name=ctx.owner_name,
        )
        # Results keyed by call id: a call id repeated within one run is not executed twice.
        executed: dict[str, str] = {}
        called: list[str] = []

        state = LoopState.DRAFTING
        max_iterations = max(1, self._config.max_tool_iterations)
        for iteration in range(1, max_iterations + 1):
            try:
                completion = await self._completion.complete(messages, tools)
            except CompletionError as exc:
                logger.warning("Completion failed iteration=%d: %s", iteration, exc)
                return LoopOutcome(reply=ERROR_FALLBACK, iterations=iteration, fallback=True, tool_calls=called)
            except Exception:
                logger.exception("Completion crashed iteration=%d", iteration)
                return LoopOutcome(reply=ERROR_FALLBACK, iterations=iteration, fallback=True, tool_calls=called)

            if not completion.tool_calls:
                state = LoopState.DONE
                text = (completion.content or "").strip()
                if not text:
                    return LoopOutcome(reply=EMPTY_FALLBACK, iterations=iteration, fallback=True, tool_calls=called)
                return LoopOutcome(reply=text, iterations=iteration, tool_calls=called)

            state = LoopState.AWAITING_TOOL_RESULT
            messages.append(
                {
                    "role": "assistant",
                    "content": completion.content or "",
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": call.arguments or "{}"},
                        }
                        for call in completion.tool_calls
                    ],
                }
            )

            # Results go back in the order the model requested them.
            for call in completion.tool_calls:
                command = ToolCommand.from_call(call)
                content = executed.get(command.call_id)
                if content is None:
                    logger.info("Tool call name=%s iteration=%d", command.name, iteration)
                    result = await self._toolbox.execute(command, tool_ctx)
                    content = _dump(result)
                    executed[command.call_id] = content
                    called.append(command.name)
                messages.append({"role": "tool", "tool_call_id": command.call_id, "content": content})

            state = LoopState.DRAFTING

        logger.info("Tool iteration limit reached (%d), state=%s", max_iterations, state)
        return LoopOutcome(reply=EMPTY_FALLBACK, iterations=max_iterations, fallback=True, tool_calls=called)
