# src/second_brain/llm/offline.py

from __future__ import annotations

from typing import Any

from ..core.conversation import Conversation, ProviderText, ToolTurn


class OfflineProvider:
    """
    Offline deterministic provider used for demos when no external API is configured.

    Behavior:
    - Extraction prompts -> non-JSON text, so the parser takes its local fallback
      (new tasks from the message text, relative dates resolved locally)
    - Completions -> a fixed offline note
    - Tool conversations -> a final answer with no tool calls
    """

    async def extract(self, prompt: str, effort: str) -> ProviderText:
        return ProviderText(text="offline", signature=None)

    async def complete(self, prompt: str, effort: str) -> str:
        return "Offline demo mode: no external LLM is configured. Set BRAIN_LLM_API_KEY to enable real answers."

    async def start_tool_conversation(self, conversation: Conversation, tools: list[dict[str, Any]]) -> ToolTurn:
        user_text = ""
        for m in reversed(conversation.messages):
            if m["role"] == "user":
                user_text = str(m.get("content") or "")
                break
        return ToolTurn(
            text=(
                "Offline demo mode: no external LLM is configured.\n"
                "Set BRAIN_LLM_API_KEY (or use BRAIN_CAPTURE_MODE=legacy) to capture tasks.\n\n"
                f"You said: {user_text}"
            )
        )

    async def continue_tool_conversation(self, conversation: Conversation, tools: list[dict[str, Any]]) -> ToolTurn:
        return ToolTurn(text="Done.")
