# tests/test_agent_loop.py

from __future__ import annotations

import json

import pytest

from outreach_assistant.agent.loop import (
    EMPTY_FALLBACK,
    ERROR_FALLBACK,
    AgentLoop,
    AssistantContext,
)
from outreach_assistant.agent.tools import AssistantToolbox
from outreach_assistant.config import OutreachConfig
from outreach_assistant.core.ports import ChatMessage, Completion, CompletionError

from .conftest import ASSISTANT, OWNER
from .fakes import FailingCompletionClient, ScriptedCompletionClient, tool_call


def _owner_says(gateway, orchestrator, text: str) -> AssistantContext:
    conv = orchestrator.conversation_for(OWNER, ASSISTANT)
    msg = gateway.deliver(conversation_id=conv, sender_id=OWNER, body=text)
    return AssistantContext(owner_user_id=OWNER, conversation_id=conv, latest_message=msg, owner_name="Me")


def _tool_messages(messages):
    return [m for m in messages if m["role"] == "tool"]


@pytest.mark.asyncio
async def test_plain_reply_is_posted_as_assistant(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    completion.default = Completion(content="  Hello there!  ")
    ctx = _owner_says(gateway, orchestrator, "hi")

    outcome = await loop.run(ctx)

    assert outcome.reply == "Hello there!"
    assert outcome.iterations == 1
    assert outcome.fallback is False
    last = gateway.messages(ctx.conversation_id)[-1]
    assert (last.sender_id, last.body) == (ASSISTANT, "Hello there!")
    assert outcome.message_id == last.id


@pytest.mark.asyncio
async def test_history_is_mapped_to_roles(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    conv = orchestrator.conversation_for(OWNER, ASSISTANT)
    gateway.deliver(conversation_id=conv, sender_id=OWNER, body="first")
    gateway.deliver(conversation_id=conv, sender_id=ASSISTANT, body="reply")
    gateway.deliver(conversation_id=conv, sender_id=ASSISTANT, body="   ")
    ctx = _owner_says(gateway, orchestrator, "second")

    await loop.run(ctx)

    sent = completion.calls[0]
    assert sent[0]["role"] == "system"
    assert "Never surface raw identifiers" in sent[0]["content"]
    assert [(m["role"], m["content"]) for m in sent[1:]] == [
        ("user", "first"),
        ("assistant", "reply"),
        ("user", "second"),
    ]


@pytest.mark.asyncio
async def test_latest_message_appended_when_missing_from_history(loop: AgentLoop, completion, orchestrator) -> None:
    conv = orchestrator.conversation_for(OWNER, ASSISTANT)
    latest = ChatMessage(id="not-stored", conversation_id=conv, sender_id=OWNER, body="ping", sent_at=0.0)

    await loop.run(AssistantContext(owner_user_id=OWNER, conversation_id=conv, latest_message=latest))

    assert completion.calls[0][-1] == {"role": "user", "content": "ping"}


@pytest.mark.asyncio
async def test_history_is_clipped(completion, gateway, toolbox, orchestrator) -> None:
    loop = AgentLoop(completion, gateway, toolbox, OutreachConfig(assistant_user_id=ASSISTANT, max_history_messages=5))
    conv = orchestrator.conversation_for(OWNER, ASSISTANT)
    for i in range(12):
        gateway.deliver(conversation_id=conv, sender_id=OWNER, body=f"m{i}")
    ctx = _owner_says(gateway, orchestrator, "latest")

    await loop.run(ctx)

    sent = completion.calls[0]
    assert len(sent) == 1 + 5
    assert sent[-1]["content"] == "latest"


@pytest.mark.asyncio
async def test_tool_results_follow_request_order(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    completion.script = [
        Completion(tool_calls=[tool_call("c1", "list_contacts"), tool_call("c2", "list_tasks")]),
        Completion(content="You have 5 contacts."),
    ]
    outcome = await loop.run(_owner_says(gateway, orchestrator, "who can I message?"))

    assert outcome.reply == "You have 5 contacts."
    assert outcome.iterations == 2
    assert outcome.tool_calls == ["list_contacts", "list_tasks"]

    second = completion.calls[1]
    assistant_turn = [m for m in second if m.get("tool_calls")][0]
    assert [c["id"] for c in assistant_turn["tool_calls"]] == ["c1", "c2"]
    tool_msgs = _tool_messages(second)
    assert [m["tool_call_id"] for m in tool_msgs] == ["c1", "c2"]
    assert "contacts" in json.loads(tool_msgs[0]["content"])
    assert json.loads(tool_msgs[1]["content"]) == {"tasks": []}


@pytest.mark.asyncio
async def test_scenario_c_via_loop(loop: AgentLoop, completion, gateway, orchestrator, store) -> None:
    recipients = [{"user_id": f"u{i}"} for i in range(1, 6)]
    completion.script = [
        Completion(tool_calls=[tool_call("c1", "send_messages", message="Lunch?", recipients=recipients)]),
        Completion(content="That's 5 people. Should I go ahead?"),
    ]

    outcome = await loop.run(_owner_says(gateway, orchestrator, "ask everyone about lunch"))

    [tool_msg] = _tool_messages(completion.calls[1])
    assert json.loads(tool_msg["content"])["error"] == "confirmation_required"
    assert store.count_tasks() == 0
    assert outcome.reply == "That's 5 people. Should I go ahead?"
    for i in range(1, 6):
        assert gateway.messages(orchestrator.conversation_for(OWNER, f"u{i}")) == []


@pytest.mark.asyncio
async def test_sensitive_message_requires_confirmation(loop: AgentLoop, completion, gateway, orchestrator, store) -> None:
    call_args = {"message": "Here is the wifi password: hunter2", "recipients": [{"user_id": "u1"}]}
    completion.script = [
        Completion(tool_calls=[tool_call("c1", "send_messages", **call_args)]),
        Completion(content="That includes a password. Confirm?"),
    ]
    await loop.run(_owner_says(gateway, orchestrator, "send Ana the wifi password"))

    [tool_msg] = _tool_messages(completion.calls[1])
    result = json.loads(tool_msg["content"])
    assert result["error"] == "confirmation_required"
    assert "password" in result["reason"]
    assert store.count_tasks() == 0

    completion.script = [
        Completion(tool_calls=[tool_call("c9", "send_messages", confirmed=True, **call_args)]),
        Completion(content="Sent."),
    ]
    outcome = await loop.run(_owner_says(gateway, orchestrator, "yes, send it"))
    assert outcome.reply == "Sent."
    assert store.count_tasks() == 1
    [delivered] = gateway.messages(orchestrator.conversation_for(OWNER, "u1"))
    assert delivered.body == "Here is the wifi password: hunter2"


@pytest.mark.asyncio
async def test_repeated_call_id_executes_once(loop: AgentLoop, completion, gateway, orchestrator, store) -> None:
    call = tool_call("dup", "send_messages", message="Hello", recipients=[{"user_id": "u1"}])
    completion.script = [
        Completion(tool_calls=[call]),
        Completion(tool_calls=[call]),
        Completion(content="Done."),
    ]

    await loop.run(_owner_says(gateway, orchestrator, "say hello to Ana"))

    assert store.count_tasks() == 1
    assert len(gateway.messages(orchestrator.conversation_for(OWNER, "u1"))) == 1
    first, second = _tool_messages(completion.calls[2])
    assert first["content"] == second["content"]


@pytest.mark.asyncio
async def test_completion_error_falls_back(completion, gateway, toolbox, orchestrator) -> None:
    loop = AgentLoop(FailingCompletionClient(), gateway, toolbox)
    ctx = _owner_says(gateway, orchestrator, "hi")

    outcome = await loop.run(ctx)

    assert outcome.fallback is True
    assert outcome.reply == ERROR_FALLBACK
    assert gateway.messages(ctx.conversation_id)[-1].body == ERROR_FALLBACK


@pytest.mark.asyncio
async def test_error_midway_keeps_fallback(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    completion.script = [
        Completion(tool_calls=[tool_call("c1", "list_contacts")]),
        CompletionError("rate limited"),
    ]
    outcome = await loop.run(_owner_says(gateway, orchestrator, "hi"))
    assert outcome.reply == ERROR_FALLBACK
    assert outcome.iterations == 2


@pytest.mark.asyncio
async def test_empty_answer_falls_back(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    completion.default = Completion(content="   ")
    outcome = await loop.run(_owner_says(gateway, orchestrator, "hi"))
    assert outcome.reply == EMPTY_FALLBACK
    assert outcome.fallback is True


@pytest.mark.asyncio
async def test_iteration_limit(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    completion.default = Completion(tool_calls=[tool_call("again", "list_tasks")])

    outcome = await loop.run(_owner_says(gateway, orchestrator, "loop forever"))

    assert len(completion.calls) == 6
    assert outcome.iterations == 6
    assert outcome.reply == EMPTY_FALLBACK
    assert outcome.fallback is True


@pytest.mark.asyncio
async def test_unknown_tool_result_is_fed_back(loop: AgentLoop, completion, gateway, orchestrator) -> None:
    completion.script = [
        Completion(tool_calls=[tool_call("c1", "book_flight", to="Lisbon")]),
        Completion(content="I can't book flights."),
    ]
    outcome = await loop.run(_owner_says(gateway, orchestrator, "book me a flight"))

    [tool_msg] = _tool_messages(completion.calls[1])
    assert json.loads(tool_msg["content"]) == {"error": "Unknown tool: book_flight"}
    assert outcome.reply == "I can't book flights."


@pytest.mark.asyncio
async def test_reply_delivery_failure_does_not_raise(completion, toolbox, orchestrator, gateway) -> None:
    loop = AgentLoop(ScriptedCompletionClient(default=Completion(content="hi")), gateway, toolbox)
    ctx = _owner_says(gateway, orchestrator, "hello")
    gateway.failing_conversations.add(ctx.conversation_id)

    outcome = await loop.run(ctx)

    assert outcome.reply == "hi"
    assert outcome.message_id is None


def test_toolbox_exposes_schemas_to_completion(toolbox: AssistantToolbox) -> None:
    assert len(toolbox.schemas()) == len(toolbox.names())
