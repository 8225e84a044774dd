# src/outreach_assistant/llm/offline.py

from __future__ import annotations

from ..core.ports import Completion, LLMMessage, ToolSchema


class OfflineCompletionClient:
    """
    Offline deterministic completion client used for demos when no external API is configured.

    Never calls tools; answers with a short notice that echoes the member's last message.
    """

    async def complete(self, messages: list[LLMMessage], tools: list[ToolSchema]) -> Completion:
        user_text = ""
        for m in reversed(messages):
            if m.get("role") == "user":
                user_text = str(m.get("content") or "")
                break

        return Completion(
            content=(
                "Offline demo mode: no external LLM is configured.\n"
                "Set OUTREACH_OPENROUTER_API_KEY (and OUTREACH_LLM_MODELS) to enable real responses.\n\n"
                f"You said: {user_text}"
            )
        )
