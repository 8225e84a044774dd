# src/outreach_assistant/connectors/local_gateway.py

from __future__ import annotations

"""
In-process messaging gateway and contact directory.

Used by the console demo and by tests. Conversations live in memory and every delivered
message is fanned out to registered listeners (the console prints them).
"""

import logging
import time
from collections import defaultdict
from collections.abc import Callable

from ..core.identity import new_message_id
from ..core.ports import ChatMessage, Contact

logger = logging.getLogger(__name__)

MessageListener = Callable[[ChatMessage], None]


class InMemoryMessagingGateway:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._conversations: dict[str, list[ChatMessage]] = defaultdict(list)
        self._listeners: list[MessageListener] = []

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def deliver(self, *, conversation_id: str, sender_id: str, body: str) -> ChatMessage:
        msg = ChatMessage(
            id=new_message_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            body=body,
            sent_at=self._clock(),
        )
        self._conversations[conversation_id].append(msg)
        for listener in self._listeners:
            try:
                listener(msg)
            except Exception:
                logger.exception("Message listener failed conversation=%s", conversation_id)
        return msg

    async def send_message(self, *, conversation_id: str, sender_id: str, body: str) -> str:
        return self.deliver(conversation_id=conversation_id, sender_id=sender_id, body=body).id

    async def get_conversation_history(self, *, conversation_id: str, limit: int = 30) -> list[ChatMessage]:
        msgs = self._conversations.get(conversation_id, [])
        return list(msgs[-max(1, limit):])

    def messages(self, conversation_id: str) -> list[ChatMessage]:
        return list(self._conversations.get(conversation_id, []))


class StaticContactDirectory:
    """Contacts from configuration (OUTREACH_CONTACTS), shared by every owner."""

    def __init__(self, contacts: dict[str, str]) -> None:
        self._contacts = [Contact(user_id=uid, name=name) for uid, name in contacts.items()]

    async def list_contacts(self, owner_user_id: str) -> list[Contact]:
        return [c for c in self._contacts if c.user_id != owner_user_id]

    def name_of(self, user_id: str) -> str | None:
        for c in self._contacts:
            if c.user_id == user_id:
                return c.name
        return None
