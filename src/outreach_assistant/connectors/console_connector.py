# src/outreach_assistant/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.identity import conversation_peer
from ..core.ports import ChatMessage
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _make_printer(state: AppState):
    owner = state.owner_user_id
    assistant_conv = state.orchestrator.conversation_for(owner, state.assistant_user_id)

    def on_message(msg: ChatMessage) -> None:
        # The member's own lines are already on screen.
        if msg.sender_id == owner and msg.conversation_id == assistant_conv:
            return
        if msg.conversation_id == assistant_conv:
            _print_ts(f"<<< {state.display_name(msg.sender_id)}: {msg.body}")
            return
        if msg.sender_id == owner:
            peer = conversation_peer(msg.conversation_id, owner)
            who = state.display_name(peer) if peer else "?"
            _print_ts(f"[to {who}] {msg.body}")
            return
        _print_ts(f"[from {state.display_name(msg.sender_id)}] {msg.body}")

    return on_message


async def run_console_loop(state: AppState) -> None:
    owner = state.owner_user_id
    assistant_conv = state.orchestrator.conversation_for(owner, state.assistant_user_id)
    state.gateway.add_listener(_make_printer(state))

    logger.info("Console connector started (owner=%s).", owner)
    _print_ts("[CONSOLE] Type your messages. Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = (await asyncio.to_thread(input, ">>> You: ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        # Commands (/help, /tasks, ...)
        try:
            cmd_response = await command_registry.handle(state, user_input, owner, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            _print_ts(cmd_response)
            continue

        # Normal chat: deliver to the assistant conversation; the reply is printed by the listener.
        try:
            msg = state.gateway.deliver(conversation_id=assistant_conv, sender_id=owner, body=user_input)
            await state.service.handle_message(msg)
        except Exception:
            logger.exception("Console chat handler crashed.")
            _print_ts("Internal error while generating a reply.")

    logger.info("Console connector finished.")
