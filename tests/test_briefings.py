# tests/test_briefings.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from second_brain.core.models import Priority, TaskStatus
from second_brain.tasks.briefings import (
    MORNING_EMPTY,
    NIGHTLY_EMPTY,
    fallback_focus_text,
    send_morning_briefing,
    send_nightly_review,
)

from .fakes import ScriptedLLM


@pytest.mark.asyncio
async def test_morning_briefing_lists_due_tasks_with_focus(store, gateway, clock) -> None:
    store.add("Pay rent", priority=Priority.P1, due_date="2025-01-10")
    store.add("Overdue report", priority=Priority.P2, due_date="2025-01-08")
    store.add("Next week", due_date="2025-01-17")
    store.add("Already done", due_date="2025-01-09", status=TaskStatus.DONE)
    llm = ScriptedLLM(complete=["Rent first, then the report."])

    text = await send_morning_briefing(store=store, llm=llm, gateway=gateway, channel="#b", clock=clock)

    assert text == gateway.sent[0].text
    assert "Rent first, then the report." in text
    assert "• *Pay rent* (P1) - Due: 2025-01-10" in text
    assert "Overdue report" in text
    assert "Next week" not in text and "Already done" not in text
    assert llm.calls == [("complete", "high")]


@pytest.mark.asyncio
async def test_focus_list_falls_back_when_provider_fails(store, gateway, clock) -> None:
    store.add("Pay rent", due_date="2025-01-10")
    llm = ScriptedLLM(complete=[RuntimeError("quota")])

    text = await send_morning_briefing(store=store, llm=llm, gateway=gateway, channel="#b", clock=clock)

    assert fallback_focus_text([object()]) in text
    assert "1 task requiring attention" in text


@pytest.mark.asyncio
async def test_empty_digests(store, gateway, clock) -> None:
    morning = await send_morning_briefing(store=store, llm=ScriptedLLM(), gateway=gateway, channel="#b", clock=clock)
    nightly = await send_nightly_review(store=store, gateway=gateway, channel="#b", clock=clock)

    assert morning == MORNING_EMPTY
    assert nightly == NIGHTLY_EMPTY


@pytest.mark.asyncio
async def test_nightly_review_uses_local_midnight(store, gateway, clock, now) -> None:
    fresh = store.add("Fresh idea")
    old = store.add("Old idea")
    store.modified_at[fresh.id] = now - timedelta(hours=1)
    store.modified_at[old.id] = datetime(2025, 1, 9, 23, 0, tzinfo=now.tzinfo)

    text = await send_nightly_review(store=store, gateway=gateway, channel="#b", clock=clock)

    assert "• *Fresh idea* (Personal, P3) - Status: Todo" in text
    assert "Old idea" not in text


@pytest.mark.asyncio
async def test_missing_channel_skips(store, gateway, clock) -> None:
    assert await send_morning_briefing(store=store, llm=ScriptedLLM(), gateway=gateway, channel="", clock=clock) is None
    assert await send_nightly_review(store=store, gateway=gateway, channel=None, clock=clock) is None
    assert gateway.sent == []
