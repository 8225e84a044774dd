# src/outreach_assistant/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/orchestrator/gateway/LLM/agent loop).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..agent.loop import AgentLoop
from ..agent.tools import AssistantToolbox
from ..config import Settings, get_settings
from ..connectors.local_gateway import InMemoryMessagingGateway, StaticContactDirectory
from ..core.ports import CompletionClient
from ..core.service import AssistantService
from ..core.state import AppState
from ..llm.client import OpenRouterCompletionClient
from ..llm.offline import OfflineCompletionClient
from ..tasks.orchestrator import TaskOrchestrator
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def _make_completion_client(settings: Settings) -> CompletionClient:
    try:
        return OpenRouterCompletionClient(settings)
    except Exception as e:
        # Fallback for demos / local runs without external services.
        logger.info("Using offline completion client (%s).", e)
        return OfflineCompletionClient()


def create_initial_state(
    *,
    settings: Settings | None = None,
    completion: CompletionClient | None = None,
    clock: Callable[[], float] = time.time,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    config = settings.outreach_config()
    store = TaskStore(settings.tasks_db_path)
    orchestrator = TaskOrchestrator(store, config, clock=clock)
    gateway = InMemoryMessagingGateway(clock=clock)
    contacts = StaticContactDirectory(settings.contacts)

    if completion is None:
        completion = _make_completion_client(settings)

    toolbox = AssistantToolbox(orchestrator, gateway, contacts, config)
    loop = AgentLoop(completion, gateway, toolbox, config)

    names = {
        settings.owner_user_id: settings.owner_display_name,
        config.assistant_user_id: config.assistant_display_name,
        **settings.contacts,
    }
    service = AssistantService(orchestrator, gateway, loop, display_names=names)

    return AppState(
        settings=settings,
        store=store,
        orchestrator=orchestrator,
        gateway=gateway,
        contacts=contacts,
        completion=completion,
        toolbox=toolbox,
        loop=loop,
        service=service,
    )
