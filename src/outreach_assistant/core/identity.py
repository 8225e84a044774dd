# src/outreach_assistant/core/identity.py

from __future__ import annotations

import uuid
from urllib.parse import quote, unquote

_DM_PREFIX = "dm"


def _encode(user_id: str) -> str:
    # Ids may themselves contain ":" (e.g. "@ana:example.org").
    return quote(user_id, safe="@.-_~+!")


def conversation_id(user_a: str, user_b: str) -> str:
    """Deterministic direct-conversation id; order of the two participants does not matter."""
    left, right = sorted((user_a, user_b))
    return f"{_DM_PREFIX}:{_encode(left)}:{_encode(right)}"


def conversation_participants(conv_id: str) -> tuple[str, str] | None:
    parts = conv_id.split(":")
    if len(parts) != 3 or parts[0] != _DM_PREFIX:
        return None
    return unquote(parts[1]), unquote(parts[2])


def conversation_peer(conv_id: str, user_id: str) -> str | None:
    """The other participant of a direct conversation, or None if user_id is not in it."""
    pair = conversation_participants(conv_id)
    if pair is None:
        return None
    left, right = pair
    if user_id == left:
        return right
    if user_id == right:
        return left
    return None


def new_message_id() -> str:
    return uuid.uuid4().hex
