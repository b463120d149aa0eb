# src/second_brain/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the chat transport, record store and language provider swappable
and lets tests substitute fakes.
"""

from datetime import date, datetime
from typing import Any, Protocol

from .conversation import Conversation, ProviderText, ToolTurn
from .models import CreatedRecord, Task, TaskFields, TaskStatus


class LLMProvider(Protocol):
    """Language-understanding provider (OpenAI-compatible chat completions)."""

    async def extract(self, prompt: str, effort: str) -> ProviderText: ...

    async def complete(self, prompt: str, effort: str) -> str: ...

    async def start_tool_conversation(
            self,
            conversation: Conversation,
            tools: list[dict[str, Any]],
    ) -> ToolTurn: ...

    async def continue_tool_conversation(
            self,
            conversation: Conversation,
            tools: list[dict[str, Any]],
    ) -> ToolTurn: ...


class ChatGateway(Protocol):
    """
    Connector-side port: how the core talks back to the user.

    update_message is best-effort: implementations log failures and return.
    """

    async def send_message(self, channel: str, text: str, thread_key: str | None = None) -> str: ...

    async def update_message(self, channel: str, message_id: str, text: str) -> None: ...


class RecordStore(Protocol):
    # Capture
    async def create(self, fields: TaskFields) -> CreatedRecord: ...

    # Lookups (degrade to None / [] on transport errors)
    async def get(self, task_id: str) -> Task | None: ...
    async def find_by_thread_key(self, key: str) -> Task | None: ...
    async def find_by_fuzzy_title(self, text: str) -> Task | None: ...
    async def search(self, term: str) -> list[Task]: ...

    # Digest queries
    async def query_due(self, on_or_before: date) -> list[Task]: ...
    async def query_modified_since(self, since: datetime) -> list[Task]: ...

    # Mutations (raise RecordStoreError on failure)
    async def update_status(self, task_id: str, status: TaskStatus) -> None: ...
    async def append_note(self, task_id: str, text: str) -> None: ...
    async def update_due_date(self, task_id: str, due_date: str) -> None: ...
    async def archive(self, task_id: str) -> None: ...


class RecordStoreError(RuntimeError):
    """A mutating record-store call failed."""
