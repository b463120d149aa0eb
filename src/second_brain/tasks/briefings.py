# src/second_brain/tasks/briefings.py

"""
Daily digests posted to the briefing channel.

- morning briefing: open tasks due today or earlier, plus a short focus list
- nightly review: tasks created or edited since local midnight

Both are best-effort jobs: failures are logged and swallowed so the
scheduler keeps running.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..core.dates import Clock
from ..core.models import Task
from ..core.ports import ChatGateway, LLMProvider, RecordStore
from ..core.prompts import build_focus_list_prompt

logger = logging.getLogger(__name__)

MORNING_EMPTY = "🌅 *Good Morning!*\n\nNo tasks due today. Have a productive day!"
NIGHTLY_EMPTY = "🌙 *Nightly Review*\n\nNo tasks were added or modified today."


def fallback_focus_text(tasks: Sequence[Task]) -> str:
    n = len(tasks)
    return f"Your focus list for today: {n} task{'s' if n != 1 else ''} requiring attention."


async def generate_focus_list(llm: LLMProvider, tasks: Sequence[Task]) -> str:
    try:
        text = await llm.complete(build_focus_list_prompt(tasks), "high")
    except Exception:
        logger.exception("Focus list generation failed")
        return fallback_focus_text(tasks)
    return text.strip() or fallback_focus_text(tasks)


def format_morning_briefing(focus_text: str, tasks: Sequence[Task]) -> str:
    lines = [
        f"• *{t.title}* ({t.priority.value})" + (f" - Due: {t.due_date}" if t.due_date else "")
        for t in tasks
    ]
    return f"🌅 *Daily Briefing - Morning Focus*\n\n{focus_text}\n\n*Tasks Due Today:*\n" + "\n".join(lines)


def format_nightly_review(tasks: Sequence[Task]) -> str:
    lines = [
        f"• *{t.title}* ({t.category.value}, {t.priority.value}) - Status: {t.status.value}"
        for t in tasks
    ]
    return "🌙 *Nightly Review*\n\nHere's what happened today:\n\n" + "\n".join(lines)


async def send_morning_briefing(
        *,
        store: RecordStore,
        llm: LLMProvider,
        gateway: ChatGateway,
        channel: str | None,
        clock: Clock,
) -> str | None:
    """Send the morning briefing. Returns the sent text, or None when skipped/failed."""
    if not channel:
        logger.warning("Briefing channel not set, skipping morning briefing")
        return None

    try:
        today = clock().date()
        due = await store.query_due(today)
        if not due:
            message = MORNING_EMPTY
        else:
            message = format_morning_briefing(await generate_focus_list(llm, due), due)

        await gateway.send_message(channel, message)
        logger.info("Morning briefing sent with %d tasks", len(due))
        return message
    except Exception:
        logger.exception("Morning briefing failed")
        return None


async def send_nightly_review(
        *,
        store: RecordStore,
        gateway: ChatGateway,
        channel: str | None,
        clock: Clock,
) -> str | None:
    """Send the nightly review. Returns the sent text, or None when skipped/failed."""
    if not channel:
        logger.warning("Briefing channel not set, skipping nightly review")
        return None

    try:
        midnight = clock().replace(hour=0, minute=0, second=0, microsecond=0)
        tasks = await store.query_modified_since(midnight)
        message = format_nightly_review(tasks) if tasks else NIGHTLY_EMPTY

        await gateway.send_message(channel, message)
        logger.info("Nightly review sent with %d tasks", len(tasks))
        return message
    except Exception:
        logger.exception("Nightly review failed")
        return None
