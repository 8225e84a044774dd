# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from outreach_assistant.config import DEFAULT_SENSITIVE_KEYWORDS, OutreachConfig, Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith("OUTREACH_") or key == "OPENROUTER_API_KEY":
            monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    s = Settings.from_env()

    assert s.owner_user_id == "me"
    assert s.openrouter_api_key is None
    assert s.llm_models == ["openai/gpt-4o-mini"]
    assert s.tasks_db_path == Path(".local/outreach") / "tasks.sqlite3"
    assert s.outreach_config() == OutreachConfig()
    assert s.outreach.sensitive_keywords == DEFAULT_SENSITIVE_KEYWORDS


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OUTREACH_MAX_RECIPIENTS", "4")
    monkeypatch.setenv("OUTREACH_CONFIRMATION_THRESHOLD", "2")
    monkeypatch.setenv("OUTREACH_REMINDER_THRESHOLD_HOURS", "1.5")
    monkeypatch.setenv("OUTREACH_LLM_MODELS", "a/one, b/two")
    monkeypatch.setenv("OUTREACH_CONTACTS", "u1:Ana, u2:Ben Lee, u3")
    monkeypatch.setenv("OUTREACH_SENSITIVE_KEYWORDS", "Payroll,Salary")
    monkeypatch.setenv("OUTREACH_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")

    s = Settings.from_env()

    assert s.outreach.max_recipients == 4
    assert s.outreach.confirmation_threshold == 2
    assert s.outreach.reminder_threshold_hours == 1.5
    assert s.outreach.sensitive_keywords == ("payroll", "salary")
    assert s.llm_models == ["a/one", "b/two"]
    assert s.contacts == {"u1": "Ana", "u2": "Ben Lee", "u3": "u3"}
    assert s.tasks_db_path == tmp_path / "tasks.sqlite3"
    assert s.openrouter_api_key == "sk-test"


def test_bad_numbers_fall_back_and_clamp(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OUTREACH_MAX_RECIPIENTS", "lots")
    monkeypatch.setenv("OUTREACH_MAX_TOOL_ITERATIONS", "0")
    monkeypatch.setenv("OUTREACH_REMINDER_THRESHOLD_HOURS", "-3")

    s = Settings.from_env()

    assert s.outreach.max_recipients == 10
    assert s.outreach.max_tool_iterations == 1
    assert s.outreach.reminder_threshold_hours == 0.0
