# src/second_brain/core/conversation.py

"""
Provider turn types and the transient tool-use conversation.

Messages are kept in the OpenAI chat format:
{"role": "system"|"user"|"assistant"|"tool", ...}.

Key invariant:
every tool call of an assistant turn gets exactly one tool message
before the conversation is sent to the provider again.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class ProviderText:
    text: str
    signature: str | None = None


@dataclass(slots=True, frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]
    signature: str | None = None


@dataclass(slots=True)
class ToolTurn:
    """One provider reply: a final text, requested tool calls, or both."""

    text: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    signature: str | None = None


@dataclass(slots=True)
class ToolResult:
    name: str
    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return dict(self.data or {})


class ConversationStateError(RuntimeError):
    pass


def _serialize_call(call: ToolCall) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": call.id,
        "type": "function",
        "function": {
            "name": call.name,
            "arguments": json.dumps(call.arguments, ensure_ascii=False),
        },
    }
    if call.signature:
        # Gemini's OpenAI-compatible endpoint expects the signature echoed back here.
        out["extra_content"] = {"google": {"thought_signature": call.signature}}
    return out


class Conversation:
    """Ordered turns of one agentic loop. Never persisted."""

    def __init__(self, system_prompt: str, user_text: str) -> None:
        self.messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_text},
        ]
        self._pending: dict[str, ToolCall] = {}

    @property
    def pending_calls(self) -> list[ToolCall]:
        return list(self._pending.values())

    def add_assistant_turn(self, turn: ToolTurn) -> None:
        self.ensure_settled()
        msg: dict[str, Any] = {"role": "assistant", "content": turn.text or None}
        if turn.tool_calls:
            msg["tool_calls"] = [_serialize_call(call) for call in turn.tool_calls]
            for call in turn.tool_calls:
                self._pending[call.id] = call
        self.messages.append(msg)

    def add_tool_result(self, call: ToolCall, result: ToolResult) -> None:
        if call.id not in self._pending:
            raise ConversationStateError(f"No pending tool call with id={call.id!r}")
        del self._pending[call.id]
        self.messages.append(
            {
                "role": "tool",
                "tool_call_id": call.id,
                "name": call.name,
                "content": json.dumps(result.to_payload(), ensure_ascii=False, default=str),
            }
        )

    def ensure_settled(self) -> None:
        if self._pending:
            names = ", ".join(c.name for c in self._pending.values())
            raise ConversationStateError(f"Tool calls without results: {names}")
