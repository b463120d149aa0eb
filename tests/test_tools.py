# tests/test_tools.py

from __future__ import annotations

import pytest

from second_brain.core.models import Category, Priority, TaskStatus
from second_brain.core.tools import (
    ARCHIVE_TASKS,
    CREATE_TASK,
    SEARCH_TASKS,
    TOOL_NAMES,
    UPDATE_TASK_STATUS,
    CreateTaskArgs,
    SearchTasksArgs,
    ToolDispatcher,
    UnknownToolError,
    parse_tool_args,
)


def test_declarations_cover_every_tool() -> None:
    assert set(TOOL_NAMES) == {"search_tasks", "create_task", "update_task_status", "archive_tasks", "add_task_note"}


def test_parse_tool_args_variants() -> None:
    assert parse_tool_args(SEARCH_TASKS, {}) == SearchTasksArgs(query="all")

    args = parse_tool_args(CREATE_TASK, {"title": "t" * 150, "priority": "P1", "category": "work"})
    assert isinstance(args, CreateTaskArgs)
    assert len(args.title) == 100
    assert args.summary == args.title
    assert args.priority == Priority.P1
    assert args.category == Category.WORK

    with pytest.raises(ValueError):
        parse_tool_args(UPDATE_TASK_STATUS, {"status": "Done"})
    with pytest.raises(UnknownToolError):
        parse_tool_args("drop_database", {})


@pytest.mark.asyncio
async def test_archive_all_matches(store) -> None:
    for title in ("View homepage", "View login", "View settings"):
        store.add(title, assignee="View")
    keep = store.add("Unrelated")
    dispatcher = ToolDispatcher(store)

    result = await dispatcher.dispatch(ARCHIVE_TASKS, {"searchTerm": "View"})

    assert result.ok
    assert result.data == {"success": True, "archived": 3}
    assert [t.id for t in await store.search("all")] == [keep.id]


@pytest.mark.asyncio
async def test_unknown_tool_and_bad_args_come_back_as_errors(store) -> None:
    dispatcher = ToolDispatcher(store)

    unknown = await dispatcher.dispatch("launch_rockets", {})
    missing = await dispatcher.dispatch(CREATE_TASK, {"summary": "no title"})

    assert unknown.to_payload() == {"error": "Unknown tool"}
    assert not missing.ok
    assert "title" in (missing.error or "")
    assert store.calls == []


@pytest.mark.asyncio
async def test_store_failure_is_reported_not_raised(store) -> None:
    dispatcher = ToolDispatcher(store)

    result = await dispatcher.dispatch(UPDATE_TASK_STATUS, {"id": "nope", "status": "Done"})

    assert not result.ok
    assert "not found" in (result.error or "")


@pytest.mark.asyncio
async def test_create_links_thread_and_signature_then_update(store) -> None:
    dispatcher = ToolDispatcher(store, thread_key="msg-1", signature="sig-1")

    created = await dispatcher.dispatch(CREATE_TASK, {"title": "Ship v2", "summary": "Ship it", "dueDate": "2025-01-12"})
    task_id = created.data["id"]
    updated = await dispatcher.dispatch(UPDATE_TASK_STATUS, {"id": task_id, "status": "in_progress"})

    task = await store.get(task_id)
    assert updated.data == {"success": True}
    assert task.thread_key == "msg-1"
    assert task.context_signature == "sig-1"
    assert task.due_date == "2025-01-12"
    assert task.status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_status_synonyms_and_unknown_status(store) -> None:
    task = store.add("Write report", status=TaskStatus.IN_PROGRESS)
    dispatcher = ToolDispatcher(store)

    bogus = await dispatcher.dispatch(UPDATE_TASK_STATUS, {"id": task.id, "status": "sort of"})
    assert not bogus.ok
    assert "Invalid status" in (bogus.error or "")
    assert (await store.get(task.id)).status == TaskStatus.IN_PROGRESS

    done = await dispatcher.dispatch(UPDATE_TASK_STATUS, {"id": task.id, "status": "completed"})
    assert done.data == {"success": True}
    assert (await store.get(task.id)).status == TaskStatus.DONE


def test_task_status_parse() -> None:
    assert TaskStatus.parse("finished") == TaskStatus.DONE
    assert TaskStatus.parse("In_Progress") == TaskStatus.IN_PROGRESS
    assert TaskStatus.parse("started") == TaskStatus.IN_PROGRESS
    assert TaskStatus.parse(" todo ") == TaskStatus.TODO
    with pytest.raises(ValueError):
        TaskStatus.parse("")
