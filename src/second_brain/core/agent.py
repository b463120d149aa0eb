# src/second_brain/core/agent.py

"""
Bounded provider <-> tool conversation.

Start -> ProviderTurn -> (tool calls? -> ExecuteTools -> ProviderTurn | Done)

Tool calls of one turn run sequentially, in the order the provider listed
them, so a later call can use an id created by an earlier one. The loop stops
after `max_turns` provider turns; the final turn's tool calls are not run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from .conversation import Conversation, ToolResult, ToolTurn
from .dates import Clock, format_reference_now
from .ports import LLMProvider
from .prompts import build_agent_system_prompt
from .tools import TOOL_DECLARATIONS, TOOL_NAMES, TOOL_PROGRESS, ToolDispatcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 5

ProgressCallback = Callable[[str], Awaitable[None]]


def _summarize_results(results: list[ToolResult]) -> str:
    if not results:
        return "I couldn't finish that request. Please try rephrasing it."

    lines = []
    for r in results:
        if r.ok:
            lines.append(f"- {r.name}: ok")
        else:
            lines.append(f"- {r.name}: failed ({r.error})")
    return "I ran out of steps before finishing. Here is what I did:\n" + "\n".join(lines)


class AgentLoop:
    def __init__(self, llm: LLMProvider, clock: Clock, *, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self._llm = llm
        self._clock = clock
        self.max_turns = max_turns

    async def run(
            self,
            text: str,
            *,
            dispatcher: ToolDispatcher,
            on_progress: ProgressCallback | None = None,
            now: datetime | None = None,
    ) -> str:
        """
        Run the conversation for one user message and return the final answer.

        Provider errors propagate to the caller. Tool errors do not: they are
        fed back to the provider as `{"error": ...}` results.
        """
        now = now or self._clock()
        conversation = Conversation(
            build_agent_system_prompt(format_reference_now(now), TOOL_NAMES),
            text,
        )

        executed: list[ToolResult] = []
        last_text = ""
        turn: ToolTurn | None = None

        for turn_no in range(1, self.max_turns + 1):
            if turn is None:
                turn = await self._llm.start_tool_conversation(conversation, TOOL_DECLARATIONS)
            else:
                turn = await self._llm.continue_tool_conversation(conversation, TOOL_DECLARATIONS)

            if turn.text and turn.text.strip():
                last_text = turn.text.strip()

            if not turn.tool_calls:
                logger.info("Agent finished after %d turn(s)", turn_no)
                return last_text or _summarize_results(executed)

            if turn_no == self.max_turns:
                logger.warning(
                    "Agent hit the turn cap (%d); dropping %d pending tool call(s)",
                    self.max_turns,
                    len(turn.tool_calls),
                )
                break

            conversation.add_assistant_turn(turn)
            for call in turn.tool_calls:
                if on_progress is not None:
                    await self._emit(on_progress, TOOL_PROGRESS.get(call.name, f"⚙️ Running {call.name}"))
                result = await dispatcher.dispatch(call.name, call.arguments)
                conversation.add_tool_result(call, result)
                executed.append(result)

        return last_text or _summarize_results(executed)

    @staticmethod
    async def _emit(on_progress: ProgressCallback, label: str) -> None:
        try:
            await on_progress(f"{label}...")
        except Exception:
            logger.debug("Progress callback failed", exc_info=True)
