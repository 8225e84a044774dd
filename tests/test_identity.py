# tests/test_identity.py

from __future__ import annotations

from outreach_assistant.core.identity import conversation_id, conversation_participants, conversation_peer


def test_conversation_id_is_order_independent() -> None:
    assert conversation_id("u2", "u1") == conversation_id("u1", "u2") == "dm:u1:u2"


def test_ids_with_colons_round_trip() -> None:
    me, ana = "@me:example.org", "@ana:example.org"
    conv = conversation_id(me, ana)

    assert conv.count(":") == 2
    assert conversation_participants(conv) == (ana, me)
    assert conversation_peer(conv, ana) == me
    assert conversation_peer(conv, me) == ana
    assert conversation_peer(conv, "@eve:example.org") is None


def test_escape_character_itself_is_preserved() -> None:
    conv = conversation_id("50%off", "a:b")
    assert conversation_peer(conv, "50%off") == "a:b"


def test_non_direct_conversations_have_no_peer() -> None:
    assert conversation_peer("group:42", "u1") is None
    assert conversation_participants("dm:only-one") is None
