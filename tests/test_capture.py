# tests/test_capture.py

from __future__ import annotations

import asyncio
import json

import pytest

from second_brain.core.capture import (
    MSG_ANSWER_FAILED,
    MSG_MISSING_SIGNATURE,
    MSG_THREAD_NOT_FOUND,
    MSG_UNDERSTANDING,
    KeyedLocks,
)
from second_brain.core.conversation import ToolTurn
from second_brain.core.models import CreatedRecord, InboundMessage, TaskFields, TaskStatus
from second_brain.core.ports import RecordStoreError
from second_brain.core.tools import CREATE_TASK, SEARCH_TASKS

from .conftest import make_orchestrator
from .fakes import InMemoryStore, RecordingGateway, ScriptedLLM, call


def _msg(text: str, *, message_id: str = "in1", thread_key: str | None = None) -> InboundMessage:
    return InboundMessage(channel="C1", user="U1", text=text, message_id=message_id, thread_key=thread_key)


@pytest.mark.asyncio
async def test_agentic_capture_edits_one_status_message(clock, store, gateway) -> None:
    llm = ScriptedLLM(
        turns=[
            ToolTurn(tool_calls=[call(CREATE_TASK, title="Buy milk", summary="Buy milk", dueDate="2025-01-11")]),
            ToolTurn(text="✅ Added *Buy milk* for tomorrow."),
        ]
    )
    orch = make_orchestrator(llm, store, gateway, clock)

    await orch.handle(_msg("Buy milk tomorrow", message_id="in7"))

    [status] = gateway.sent
    assert status.text == MSG_UNDERSTANDING
    assert status.thread_key == "in7"
    assert gateway.final_text(status.message_id) == "✅ Added *Buy milk* for tomorrow."
    [task] = store.tasks.values()
    assert task.thread_key == "in7"
    assert task.context_signature.startswith("fallback_")


@pytest.mark.asyncio
async def test_provider_unreachable_sends_single_failure_message(clock, store, gateway) -> None:
    llm = ScriptedLLM(turns=[ConnectionError("provider unreachable")])
    orch = make_orchestrator(llm, store, gateway, clock)

    await orch.handle(_msg("anything"))

    failures = [m for m in gateway.sent if m.text.startswith("❌")]
    assert len(failures) == 1
    assert "provider unreachable" in failures[0].text
    assert store.tasks == {}


@pytest.mark.asyncio
async def test_gateway_failure_does_not_escape(clock, store) -> None:
    gateway = RecordingGateway(fail_sends=True)
    orch = make_orchestrator(ScriptedLLM(), store, gateway, clock)

    await orch.handle(_msg("hello"))


@pytest.mark.asyncio
async def test_list_all_tasks_returns_every_open_task(clock, store, gateway) -> None:
    store.add("Alpha")
    store.add("Beta", assignee="Bob")
    store.add("Gamma", status=TaskStatus.DONE)
    reply = json.dumps({"title": "List tasks", "intent": "query", "search_query": "all"})
    llm = ScriptedLLM(extract=[reply], complete=["You have Alpha and Beta."])
    orch = make_orchestrator(llm, store, gateway, clock, mode="legacy")

    await orch.handle(_msg("list all tasks"))

    assert ("search", "all") in store.calls
    answer_prompt = llm.prompts[-1]
    assert "Alpha" in answer_prompt and "Beta" in answer_prompt
    assert "Gamma" not in answer_prompt
    assert gateway.final_text(gateway.sent[0].message_id) == "You have Alpha and Beta."


@pytest.mark.asyncio
async def test_query_answer_failure_uses_apology(clock, store, gateway) -> None:
    reply = json.dumps({"title": "q", "intent": "query", "search_query": "all"})
    llm = ScriptedLLM(extract=[reply], complete=[RuntimeError("down")])
    orch = make_orchestrator(llm, store, gateway, clock, mode="legacy")

    await orch.handle(_msg("what do I have?"))

    assert gateway.final_text(gateway.sent[0].message_id) == MSG_ANSWER_FAILED


@pytest.mark.asyncio
async def test_legacy_delete_archives_every_match(clock, store, gateway) -> None:
    for title in ("View A", "View B", "View C"):
        store.add(title)
    reply = json.dumps({"title": "Delete View", "intent": "delete_task", "target_task_title": "View"})
    orch = make_orchestrator(ScriptedLLM(extract=[reply]), store, gateway, clock, mode="legacy")

    await orch.handle(_msg("delete all tasks for View"))

    assert len(store.archived) == 3
    assert gateway.final_text(gateway.sent[0].message_id) == '🗑️ Archived 3 task(s) matching "View".'


@pytest.mark.asyncio
async def test_legacy_update_miss_only_warns(clock, store, gateway) -> None:
    reply = json.dumps({"title": "x", "intent": "update_task", "target_task_title": "Nonexistent"})
    orch = make_orchestrator(ScriptedLLM(extract=[reply]), store, gateway, clock, mode="legacy")

    await orch.handle(_msg("mark nonexistent as done"))

    assert store.tasks == {}
    assert gateway.final_text(gateway.sent[0].message_id) == '⚠️ Could not find task "Nonexistent".'


@pytest.mark.asyncio
async def test_legacy_new_task_and_update_in_one_message(clock, store, gateway) -> None:
    report = store.add("Quarterly report", context_signature="sig-r")
    reply = json.dumps(
        [
            {"title": "Call plumber", "clean_summary": "Call the plumber", "intent": "new_task"},
            {"title": "report", "clean_summary": "report is done", "intent": "update_task",
             "target_task_title": "quarterly report"},
        ]
    )
    llm = ScriptedLLM(extract=[reply, json.dumps({"action": "completed"})])
    orch = make_orchestrator(llm, store, gateway, clock, mode="legacy")

    await orch.handle(_msg("call the plumber; also the quarterly report is done", message_id="in3"))

    final = gateway.final_text(gateway.sent[0].message_id)
    assert final.startswith("✅ Thought captured: Call plumber")
    assert final.endswith('✅ Updated "Quarterly report" to Done!')
    assert report.status == TaskStatus.DONE
    plumber = next(t for t in store.tasks.values() if t.title == "Call plumber")
    assert plumber.thread_key == "in3"


@pytest.mark.asyncio
async def test_thread_reply_updates_linked_task(clock, store, gateway) -> None:
    task = store.add("Buy milk", thread_key="in1", context_signature="sig-1")
    orch = make_orchestrator(ScriptedLLM(extract=['{"action": "completed"}']), store, gateway, clock)

    await orch.handle(_msg("done", message_id="in2", thread_key="in1"))

    assert task.status == TaskStatus.DONE
    [status] = gateway.sent
    assert status.thread_key == "in1"
    assert gateway.final_text(status.message_id) == "✅ Task marked as done!"


@pytest.mark.asyncio
async def test_thread_reply_without_task(clock, store, gateway) -> None:
    orch = make_orchestrator(ScriptedLLM(), store, gateway, clock)

    await orch.handle(_msg("done", message_id="in2", thread_key="unknown"))

    assert [m.text for m in gateway.sent] == [MSG_THREAD_NOT_FOUND]


@pytest.mark.asyncio
async def test_thread_reply_warns_about_missing_signature(clock, store, gateway) -> None:
    store.add("Old task", thread_key="in1")
    orch = make_orchestrator(ScriptedLLM(extract=['{"action": "unchanged"}']), store, gateway, clock)

    await orch.handle(_msg("ok", message_id="in2", thread_key="in1"))

    assert gateway.sent[0].text == MSG_MISSING_SIGNATURE
    assert gateway.final_text(gateway.sent[1].message_id) == "Got it!"


@pytest.mark.asyncio
async def test_replies_in_one_thread_are_serialized(clock, store, gateway) -> None:
    store.add("Essay", thread_key="T", context_signature="s")
    active = 0
    peak = 0

    class SlowLLM(ScriptedLLM):
        async def extract(self, prompt: str, effort: str):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await super().extract(prompt, effort)

    orch = make_orchestrator(SlowLLM(), store, gateway, clock)

    await asyncio.gather(*(orch.handle(_msg(f"note {i}", message_id=f"r{i}", thread_key="T")) for i in range(3)))

    assert peak == 1
    assert len(orch._thread_locks) == 0


@pytest.mark.asyncio
async def test_keyed_locks_do_not_block_other_keys() -> None:
    locks = KeyedLocks()

    async with locks.hold("a"):
        async with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_empty_message_is_ignored(clock, store, gateway) -> None:
    orch = make_orchestrator(ScriptedLLM(turns=[ToolTurn(tool_calls=[call(SEARCH_TASKS)])]), store, gateway, clock)

    await orch.handle(_msg("   "))

    assert gateway.sent == []


@pytest.mark.asyncio
async def test_legacy_failed_item_does_not_stop_the_rest(clock, gateway) -> None:
    class FlakyStore(InMemoryStore):
        async def create(self, fields: TaskFields) -> CreatedRecord:
            if fields.title == "B":
                raise RecordStoreError("boom on second")
            return await super().create(fields)

    store = FlakyStore()
    reply = json.dumps([{"title": t, "clean_summary": t, "intent": "new_task"} for t in ("A", "B", "C")])
    orch = make_orchestrator(ScriptedLLM(extract=[reply]), store, gateway, clock, mode="legacy")

    await orch.handle(_msg("A, B and C"))

    assert [t.title for t in store.tasks.values()] == ["A", "C"]
    [status] = gateway.sent
    final = gateway.final_text(status.message_id)
    assert final.startswith("✅ Thought captured: A")
    assert '❌ Failed to process "B": boom on second' in final
    assert "✅ Thought captured: C" in final
