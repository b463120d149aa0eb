# src/second_brain/core/capture.py

"""
Capture orchestration: top-level routing for one inbound chat message.

- Replies inside a thread go to the thread-update flow.
- Everything else goes to the agent loop (agentic mode) or through the
  structured parser, one extraction at a time (legacy mode).

User-visible progress is a series of edits to one status message, posted in
the thread of the inbound message. Any failure is logged and turned into a
single failure message; nothing propagates to the connector.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal

from .agent import DEFAULT_MAX_TURNS, AgentLoop
from .dates import Clock
from .models import InboundMessage, Intent, Task, TaskFields, ThoughtExtraction
from .parser import ParseResult, StructuredParser, fallback_signature
from .ports import ChatGateway, LLMProvider, RecordStore
from .prompts import build_answer_prompt
from .thread_update import ThreadUpdateClassifier, apply_update_decision
from .tools import ToolDispatcher

logger = logging.getLogger(__name__)

CaptureMode = Literal["agentic", "legacy"]

MSG_UNDERSTANDING = "🤔 Understanding your request..."
MSG_ANALYZING_UPDATE = "🔄 Analyzing your update..."
MSG_THREAD_NOT_FOUND = "⚠️ Could not find the original thought for this thread."
MSG_MISSING_SIGNATURE = "⚠️ Missing thought signature for this task. Update may not work correctly."
MSG_ANSWER_FAILED = "Sorry, I couldn't analyze the tasks right now."


def _error_text(err: BaseException) -> str:
    return str(err) or err.__class__.__name__


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


@dataclass(slots=True)
class StatusMessage:
    """The single outbound message a capture keeps editing."""

    gateway: ChatGateway
    channel: str
    message_id: str

    async def update(self, text: str) -> None:
        try:
            await self.gateway.update_message(self.channel, self.message_id, text)
        except Exception:
            logger.warning("Status update failed (channel=%s message=%s)", self.channel, self.message_id,
                           exc_info=True)


class CaptureOrchestrator:
    def __init__(
            self,
            *,
            llm: LLMProvider,
            store: RecordStore,
            gateway: ChatGateway,
            clock: Clock,
            mode: CaptureMode = "agentic",
            thinking_level: str = "low",
            max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self.llm = llm
        self.store = store
        self.gateway = gateway
        self.clock = clock
        self.mode: CaptureMode = mode
        self.thinking_level = thinking_level

        self.parser = StructuredParser(llm, clock)
        self.agent = AgentLoop(llm, clock, max_turns=max_turns)
        self.classifier = ThreadUpdateClassifier(llm, clock)

        self._thread_locks = KeyedLocks()

    async def handle(self, event: InboundMessage) -> None:
        """Process one inbound message. Never raises."""
        text = (event.text or "").strip()
        if not text:
            return

        if event.thread_key:
            await self.handle_thread_reply(event)
            return

        try:
            status_id = await self.gateway.send_message(event.channel, MSG_UNDERSTANDING, event.message_id)
            status = StatusMessage(self.gateway, event.channel, status_id)

            if self.mode == "agentic":
                answer = await self._run_agentic(event, status)
            else:
                answer = await self._run_legacy(event, status)

            await status.update(answer)
        except Exception as e:
            logger.exception("Capture failed (channel=%s message=%s)", event.channel, event.message_id)
            await self._send_quietly(event.channel, f"❌ Failed to capture thought: {_error_text(e)}",
                                     event.message_id)

    # ---- agentic ----

    async def _run_agentic(self, event: InboundMessage, status: StatusMessage) -> str:
        dispatcher = ToolDispatcher(
            self.store,
            thread_key=event.message_id,
            signature=fallback_signature(event.text),
        )
        return await self.agent.run(event.text, dispatcher=dispatcher, on_progress=status.update)

    # ---- legacy (multi-extraction) ----

    async def _run_legacy(self, event: InboundMessage, status: StatusMessage) -> str:
        result = await self.parser.extract(event.text, self.thinking_level)
        if result.degraded:
            logger.info("Parser degraded to local fallback for message=%s", event.message_id)

        single = len(result.extractions) == 1
        lines: list[str] = []
        for extraction in result.extractions:
            source = event.text if single else (extraction.summary or extraction.title)
            try:
                lines.append(await self._apply_extraction(extraction, result, event, status, source))
            except Exception as e:
                # Items are independent; report this one and keep going.
                logger.exception("Extraction %r failed (message=%s)", extraction.title, event.message_id)
                lines.append(f'❌ Failed to process "{extraction.title}": {_error_text(e)}')

        return "\n\n".join(lines)

    async def _apply_extraction(
            self,
            extraction: ThoughtExtraction,
            result: ParseResult,
            event: InboundMessage,
            status: StatusMessage,
            source: str,
    ) -> str:
        if extraction.intent == Intent.QUERY:
            return await self._answer_query(extraction, status, source)

        if extraction.intent == Intent.DELETE_TASK:
            target = extraction.target_title or extraction.title
            await status.update(f'🔎 Searching for tasks matching "{target}"...')
            matches = await self.store.search(target)
            if not matches:
                return f'⚠️ No tasks found matching "{target}".'
            for task in matches:
                await self.store.archive(task.id)
            return f'🗑️ Archived {len(matches)} task(s) matching "{target}".'

        if extraction.intent == Intent.UPDATE_TASK:
            target = extraction.target_title or extraction.title
            await status.update(f'🔎 Searching for task "{target}"...')
            task = await self.store.find_by_fuzzy_title(target)
            if task is None:
                return f'⚠️ Could not find task "{target}".'
            await status.update(f'🔄 Found "{task.title}". Updating...')
            decision = await self.classifier.classify(task.context_signature, source, task.snapshot())
            return await apply_update_decision(self.store, task, decision, source, titled=True)

        await status.update("💾 Saving...")
        created = await self.store.create(
            TaskFields.from_extraction(extraction, signature=result.signature, thread_key=event.message_id)
        )
        logger.info("Captured %r -> %s", extraction.title, created.id)
        return f"✅ Thought captured: {extraction.title}\n{created.url}"

    async def _answer_query(self, extraction: ThoughtExtraction, status: StatusMessage, question: str) -> str:
        query = extraction.search_query or question
        await status.update(f'🔎 Searching for "{query}"...')
        tasks = await self.store.search(query)
        await status.update(f"🤔 Analyzing {len(tasks)} found tasks...")
        return await self.answer_query(question, tasks)

    async def answer_query(self, question: str, tasks: Iterable[Task]) -> str:
        try:
            answer = await self.llm.complete(build_answer_prompt(question, tasks), "low")
        except Exception:
            logger.exception("Query answer generation failed")
            return MSG_ANSWER_FAILED
        return answer.strip() or MSG_ANSWER_FAILED

    # ---- thread replies ----

    async def handle_thread_reply(self, event: InboundMessage) -> None:
        key = event.thread_key or ""
        async with self._thread_locks.hold(key):
            try:
                await self._process_thread_reply(event, key)
            except Exception as e:
                logger.exception("Thread update failed (channel=%s thread=%s)", event.channel, key)
                await self._send_quietly(event.channel, f"❌ Failed to process update: {_error_text(e)}", key)

    async def _process_thread_reply(self, event: InboundMessage, key: str) -> None:
        task = await self.store.find_by_thread_key(key)
        if task is None:
            await self.gateway.send_message(event.channel, MSG_THREAD_NOT_FOUND, key)
            return

        if not task.context_signature:
            await self.gateway.send_message(event.channel, MSG_MISSING_SIGNATURE, key)

        status_id = await self.gateway.send_message(event.channel, MSG_ANALYZING_UPDATE, key)
        status = StatusMessage(self.gateway, event.channel, status_id)

        decision = await self.classifier.classify(task.context_signature, event.text, task.snapshot())
        message = await apply_update_decision(self.store, task, decision, event.text)
        await status.update(message)
        logger.info("Thread update processed: %s -> %s", task.id, decision.action.value)

    async def _send_quietly(self, channel: str, text: str, thread_key: str | None) -> None:
        try:
            await self.gateway.send_message(channel, text, thread_key)
        except Exception:
            logger.exception("Failed to deliver failure message to %s", channel)
