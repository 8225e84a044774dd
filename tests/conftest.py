# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from outreach_assistant.agent.loop import AgentLoop
from outreach_assistant.agent.tools import AssistantToolbox
from outreach_assistant.config import OutreachConfig, Settings
from outreach_assistant.connectors.local_gateway import StaticContactDirectory
from outreach_assistant.core.service import AssistantService
from outreach_assistant.tasks.orchestrator import TaskOrchestrator
from outreach_assistant.tasks.task_store import TaskStore

from .fakes import FakeClock, FlakyGateway, ScriptedCompletionClient

OWNER = "me"
ASSISTANT = "assistant"
CONTACTS = {"u1": "Ana", "u2": "Ben", "u3": "Cleo", "u4": "Dev", "u5": "Eli"}


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def config() -> OutreachConfig:
    return OutreachConfig(assistant_user_id=ASSISTANT)


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    """Real SQLite store: its correctness is part of what we want to test."""
    return TaskStore(tmp_path / "tasks.sqlite3")


@pytest.fixture()
def orchestrator(store: TaskStore, config: OutreachConfig, clock: FakeClock) -> TaskOrchestrator:
    return TaskOrchestrator(store, config, clock=clock)


@pytest.fixture()
def gateway(clock: FakeClock) -> FlakyGateway:
    return FlakyGateway(clock=clock)


@pytest.fixture()
def contacts() -> StaticContactDirectory:
    return StaticContactDirectory({OWNER: "Me", **CONTACTS})


@pytest.fixture()
def completion() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture()
def toolbox(orchestrator, gateway, contacts, config) -> AssistantToolbox:
    return AssistantToolbox(orchestrator, gateway, contacts, config)


@pytest.fixture()
def loop(completion, gateway, toolbox, config) -> AgentLoop:
    return AgentLoop(completion, gateway, toolbox, config)


@pytest.fixture()
def service(orchestrator, gateway, loop) -> AssistantService:
    return AssistantService(orchestrator, gateway, loop, display_names={OWNER: "Me", **CONTACTS})


@pytest.fixture()
def settings(tmp_path: Path, config: OutreachConfig) -> Settings:
    return Settings(
        app_name="outreach-test",
        log_level="INFO",
        console_enabled=False,
        reminders_enabled=False,
        openrouter_api_key=None,
        openrouter_base_url="https://openrouter.ai/api/v1",
        llm_models=["test/model"],
        llm_temperature=0.2,
        extra_headers={},
        owner_user_id=OWNER,
        owner_display_name="Me",
        contacts=dict(CONTACTS),
        data_dir=tmp_path / "data",
        tasks_db_path=tmp_path / "data" / "tasks.sqlite3",
        outreach=config,
    )
