# src/outreach_assistant/llm/client.py

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..config import Settings, _env_float, _k
from ..core.ports import Completion, CompletionError, LLMMessage, ToolCall, ToolSchema

logger = logging.getLogger(__name__)

_BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def _timeouts_from_env() -> dict[str, float]:
    """
    Request timeouts, configurable via env so a slow model cannot hang the loop.

    Defaults:
    - connect timeout: 5s
    - read timeout: 45s (tool-call completions are not streamed)
    """
    return {
        "connect": _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0),
        "read": _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 45.0),
    }


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException)):
        return True
    return exc.__class__.__name__ in {"Timeout"}


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible providers answer 404 for unknown or retired models.
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "LLM is not configured (missing API key). Set OUTREACH_OPENROUTER_API_KEY in .env."
    if "LLM model list is empty" in msg:
        return "LLM is not configured (no models). Set OUTREACH_LLM_MODELS in .env."
    return msg


def _parse_tool_calls(raw_calls: Any) -> list[ToolCall]:
    out: list[ToolCall] = []
    for i, call in enumerate(raw_calls or []):
        fn = getattr(call, "function", None)
        name = getattr(fn, "name", None) if fn is not None else None
        if not name:
            continue
        arguments = getattr(fn, "arguments", None)
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments or {})
        call_id = getattr(call, "id", None) or f"call_{i}"
        out.append(ToolCall(id=str(call_id), name=str(name), arguments=arguments or "{}"))
    return out


class OpenRouterCompletionClient:
    """
    Tool-capable completion client for OpenAI-compatible endpoints (OpenRouter by default).

    Behavior:
    - Tries models in the configured order (OUTREACH_LLM_MODELS).
    - 404 (model not available) -> cool the model down for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    """

    def __init__(self, settings: Settings) -> None:
        api_key = (settings.openrouter_api_key or "").strip()
        if not api_key:
            raise CompletionError("LLM API key is not set. Set OUTREACH_OPENROUTER_API_KEY in your .env.")

        self._models = [m.strip() for m in settings.llm_models if m and m.strip()]
        self._headers = dict(settings.extra_headers or {})
        self._temperature = settings.llm_temperature
        self._bad_models: dict[str, float] = {}

        t = _timeouts_from_env()
        # Retries are disabled so a failing model falls through to the next one quickly.
        self._client = AsyncOpenAI(
            base_url=settings.openrouter_base_url,
            api_key=api_key,
            timeout=httpx.Timeout(connect=t["connect"], read=t["read"], write=10.0, pool=t["connect"]),
            max_retries=0,
        )

    async def complete(self, messages: list[LLMMessage], tools: list[ToolSchema]) -> Completion:
        if not self._models:
            raise CompletionError("LLM model list is empty. Set OUTREACH_LLM_MODELS in your .env.")

        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            t0 = time.monotonic()
            try:
                kwargs: dict[str, Any] = {
                    "model": model,
                    "messages": messages,
                    "temperature": self._temperature,
                    "extra_headers": self._headers or None,
                }
                if tools:
                    kwargs["tools"] = tools
                    kwargs["tool_choice"] = "auto"
                response = await self._client.chat.completions.create(**kwargs)
            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise CompletionError(
                        "LLM authentication failed. Check your API key (OUTREACH_OPENROUTER_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + _BAD_MODEL_COOLDOWN_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            choices = getattr(response, "choices", None) or []
            if not choices:
                last_error = CompletionError(f"Model returned no choices: {model}")
                continue

            message = choices[0].message
            completion = Completion(
                content=getattr(message, "content", None),
                tool_calls=_parse_tool_calls(getattr(message, "tool_calls", None)),
            )
            logger.info(
                "LLM: model=%s answered in %.2fs tool_calls=%d",
                model,
                time.monotonic() - t0,
                len(completion.tool_calls),
            )
            return completion

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise CompletionError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise CompletionError("LLM network/timeout error. Try again later or change models.") from last_error
            raise CompletionError("All LLM models failed.") from last_error

        raise CompletionError("All LLM models failed.")
