# tests/test_llm_client.py

from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

import httpx
import openai
import pytest

from outreach_assistant.core.ports import CompletionError
from outreach_assistant.llm.client import OpenRouterCompletionClient
from outreach_assistant.llm.offline import OfflineCompletionClient

_REQUEST = httpx.Request("POST", "https://openrouter.test/api/v1/chat/completions")


def _status_error(cls, status: int):
    return cls("boom", response=httpx.Response(status, request=_REQUEST), body=None)


def _response(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _FakeCompletions:
    def __init__(self, outcomes: dict[str, object]) -> None:
        self.outcomes = outcomes
        self.models: list[str] = []
        self.kwargs: list[dict] = []

    async def create(self, **kwargs):
        self.models.append(kwargs["model"])
        self.kwargs.append(kwargs)
        out = self.outcomes[kwargs["model"]]
        if isinstance(out, Exception):
            raise out
        return out


def _client(settings, outcomes: dict[str, object]) -> tuple[OpenRouterCompletionClient, _FakeCompletions]:
    s = replace(settings, openrouter_api_key="sk-test", llm_models=list(outcomes))
    client = OpenRouterCompletionClient(s)
    fake = _FakeCompletions(outcomes)
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=fake))
    return client, fake


def test_missing_api_key_raises(settings) -> None:
    with pytest.raises(CompletionError):
        OpenRouterCompletionClient(settings)


@pytest.mark.asyncio
async def test_falls_back_across_models_and_parses_tool_calls(settings) -> None:
    call = SimpleNamespace(id="c1", function=SimpleNamespace(name="list_tasks", arguments='{"limit": 3}'))
    client, fake = _client(
        settings,
        {
            "gone/model": _status_error(openai.NotFoundError, 404),
            "busy/model": _status_error(openai.RateLimitError, 429),
            "good/model": _response(content=None, tool_calls=[call]),
        },
    )

    out = await client.complete([{"role": "user", "content": "hi"}], tools=[{"type": "function"}])

    assert fake.models == ["gone/model", "busy/model", "good/model"]
    assert [(c.id, c.name, c.arguments) for c in out.tool_calls] == [("c1", "list_tasks", '{"limit": 3}')]
    assert fake.kwargs[-1]["tool_choice"] == "auto"

    # 404 models are skipped on the next call.
    fake.models.clear()
    await client.complete([{"role": "user", "content": "again"}], tools=[])
    assert fake.models == ["busy/model", "good/model"]
    assert "tools" not in fake.kwargs[-1]


@pytest.mark.asyncio
async def test_auth_error_fails_fast(settings) -> None:
    client, fake = _client(
        settings,
        {
            "first/model": _status_error(openai.AuthenticationError, 401),
            "second/model": _response(content="never"),
        },
    )
    with pytest.raises(CompletionError, match="authentication"):
        await client.complete([{"role": "user", "content": "hi"}], tools=[])
    assert fake.models == ["first/model"]


@pytest.mark.asyncio
async def test_all_models_failing_raises(settings) -> None:
    client, _ = _client(settings, {"only/model": openai.APIConnectionError(request=_REQUEST)})
    with pytest.raises(CompletionError, match="network"):
        await client.complete([{"role": "user", "content": "hi"}], tools=[])


@pytest.mark.asyncio
async def test_offline_client_echoes_last_user_message() -> None:
    out = await OfflineCompletionClient().complete(
        [{"role": "system", "content": "x"}, {"role": "user", "content": "hello"}], tools=[]
    )
    assert out.tool_calls == []
    assert out.content.endswith("You said: hello")
