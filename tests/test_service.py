# tests/test_service.py

from __future__ import annotations

import pytest

from outreach_assistant.core.service import AssistantService
from outreach_assistant.core.ports import Completion
from outreach_assistant.tasks.task_models import MessagingRecipient, TargetStatus, TaskStatus

from .conftest import ASSISTANT, OWNER


async def _sent_task(orchestrator, owner: str, *users: str):
    created = await orchestrator.create_messaging_task(
        owner_user_id=owner,
        recipients=[MessagingRecipient(user_id=u, name=u.title(), track_responses=True) for u in users],
        prompt="Can you make it Friday?",
        owner_name="Me",
    )
    for t in created.targets:
        await orchestrator.mark_recipient_messaged(t, "m")
    return created


@pytest.mark.asyncio
async def test_assistant_conversation_runs_loop(service: AssistantService, completion, gateway, orchestrator) -> None:
    completion.default = Completion(content="On it.")
    conv = orchestrator.conversation_for(OWNER, ASSISTANT)
    msg = gateway.deliver(conversation_id=conv, sender_id=OWNER, body="hi")

    handled = await service.handle_message(msg)

    assert handled.loop is not None
    assert handled.loop.reply == "On it."
    assert gateway.messages(conv)[-1].body == "On it."


@pytest.mark.asyncio
async def test_assistant_own_messages_are_ignored(service: AssistantService, completion, gateway, orchestrator) -> None:
    conv = orchestrator.conversation_for(OWNER, ASSISTANT)
    msg = gateway.deliver(conversation_id=conv, sender_id=ASSISTANT, body="hello")

    handled = await service.handle_message(msg)

    assert handled.loop is None and handled.notifications == []
    assert completion.calls == []


@pytest.mark.asyncio
async def test_reply_in_direct_conversation_is_captured_and_reported(
    service: AssistantService, orchestrator, gateway, completion
) -> None:
    created = await _sent_task(orchestrator, OWNER, "u1", "u2")
    conv = orchestrator.conversation_for(OWNER, "u1")
    reply = gateway.deliver(conversation_id=conv, sender_id="u1", body="Friday is fine\nthanks")

    handled = await service.handle_message(reply)

    assert handled.loop is None
    assert completion.calls == []
    [record] = handled.notifications
    assert record.owner_user_id == OWNER
    assert record.outstanding_count == 1

    targets = {t.target_user_id: t for t in await orchestrator.list_targets(created.task.id)}
    assert targets["u1"].status == TargetStatus.RESPONDED
    assert targets["u1"].last_response_message_id == reply.id

    [update] = gateway.messages(orchestrator.conversation_for(OWNER, ASSISTANT))
    assert update.sender_id == ASSISTANT
    assert update.body == "Update from U1:\n> Friday is fine\nStill waiting on 1 response."


@pytest.mark.asyncio
async def test_owner_messages_do_not_resolve_their_own_targets(service: AssistantService, orchestrator, gateway) -> None:
    created = await _sent_task(orchestrator, OWNER, "u1")
    conv = orchestrator.conversation_for(OWNER, "u1")
    msg = gateway.deliver(conversation_id=conv, sender_id=OWNER, body="Any news?")

    handled = await service.handle_message(msg)

    assert handled.notifications == []
    [target] = await orchestrator.list_targets(created.task.id)
    assert target.status == TargetStatus.AWAITING_RESPONSE


@pytest.mark.asyncio
async def test_both_participants_tasks_are_checked(service: AssistantService, orchestrator, gateway) -> None:
    # u1 also asked the owner something; the owner's message answers u1's task.
    mine = await _sent_task(orchestrator, OWNER, "u1")
    theirs = await _sent_task(orchestrator, "u1", OWNER)
    conv = orchestrator.conversation_for(OWNER, "u1")

    handled = await service.handle_message(gateway.deliver(conversation_id=conv, sender_id=OWNER, body="Yes"))
    assert [r.owner_user_id for r in handled.notifications] == ["u1"]
    assert (await orchestrator.get_task(theirs.task.id)).status == TaskStatus.COMPLETED

    handled = await service.handle_message(gateway.deliver(conversation_id=conv, sender_id="u1", body="Great"))
    assert [r.owner_user_id for r in handled.notifications] == [OWNER]
    assert (await orchestrator.get_task(mine.task.id)).status == TaskStatus.COMPLETED

    u1_updates = gateway.messages(orchestrator.conversation_for("u1", ASSISTANT))
    assert u1_updates[-1].body.startswith("Update from")


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_capture(service: AssistantService, orchestrator, gateway) -> None:
    created = await _sent_task(orchestrator, OWNER, "u1")
    gateway.failing_conversations.add(orchestrator.conversation_for(OWNER, ASSISTANT))

    conv = orchestrator.conversation_for(OWNER, "u1")
    handled = await service.handle_message(gateway.deliver(conversation_id=conv, sender_id="u1", body="done"))

    assert len(handled.notifications) == 1
    assert (await orchestrator.get_task(created.task.id)).status == TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_unrelated_conversation_is_ignored(service: AssistantService, gateway) -> None:
    msg = gateway.deliver(conversation_id="group:42", sender_id="u1", body="hi all")
    handled = await service.handle_message(msg)
    assert handled.loop is None and handled.notifications == []


@pytest.mark.asyncio
async def test_reply_is_captured_for_ids_containing_colons(service: AssistantService, orchestrator, gateway) -> None:
    owner, ana = "@me:example.org", "@ana:example.org"
    created = await _sent_task(orchestrator, owner, ana)
    conv = orchestrator.conversation_for(owner, ana)

    handled = await service.handle_message(gateway.deliver(conversation_id=conv, sender_id=ana, body="Friday works"))

    assert [r.owner_user_id for r in handled.notifications] == [owner]
    [target] = await orchestrator.list_targets(created.task.id)
    assert target.status == TargetStatus.RESPONDED
    assert (await orchestrator.get_task(created.task.id)).status == TaskStatus.COMPLETED
