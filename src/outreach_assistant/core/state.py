# src/outreach_assistant/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..agent.loop import AgentLoop
from ..agent.tools import AssistantToolbox
from ..config import Settings
from ..connectors.local_gateway import InMemoryMessagingGateway, StaticContactDirectory
from ..tasks.orchestrator import TaskOrchestrator
from ..tasks.task_store import TaskStore
from .ports import CompletionClient
from .service import AssistantService


@dataclass
class AppState:
    """Wired application objects shared by connectors and slash commands."""

    settings: Settings
    store: TaskStore
    orchestrator: TaskOrchestrator
    gateway: InMemoryMessagingGateway
    contacts: StaticContactDirectory
    completion: CompletionClient
    toolbox: AssistantToolbox
    loop: AgentLoop
    service: AssistantService

    @property
    def owner_user_id(self) -> str:
        return self.settings.owner_user_id

    @property
    def assistant_user_id(self) -> str:
        return self.settings.outreach.assistant_user_id

    def display_name(self, user_id: str) -> str:
        if user_id == self.owner_user_id:
            return self.settings.owner_display_name
        if user_id == self.assistant_user_id:
            return self.settings.outreach.assistant_display_name
        return self.contacts.name_of(user_id) or user_id
