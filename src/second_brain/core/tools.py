# src/second_brain/core/tools.py

"""
Tool declarations and the tool-call dispatcher.

Each tool's arguments are decoded into their own dataclass; `ToolArgs` is the
closed union of them, so `ToolDispatcher.dispatch` handles every variant
explicitly. The dispatcher never raises: unknown tools, bad arguments and store
failures all come back as `{"error": ...}` results so the agent loop can keep
talking to the provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final

from .conversation import ToolResult
from .models import SEARCH_ALL, Category, Priority, Task, TaskFields, TaskStatus
from .ports import RecordStore

logger = logging.getLogger(__name__)

SEARCH_TASKS = "search_tasks"
CREATE_TASK = "create_task"
UPDATE_TASK_STATUS = "update_task_status"
ARCHIVE_TASKS = "archive_tasks"
ADD_TASK_NOTE = "add_task_note"

TOOL_DECLARATIONS: Final[list[dict[str, Any]]] = [
    {
        "type": "function",
        "function": {
            "name": SEARCH_TASKS,
            "description": "Search tasks by title, assignee or category. Use query 'all' to list every open task.",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search term, or 'all' for every open task."},
                },
                "required": ["query"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": CREATE_TASK,
            "description": "Create one new task.",
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Concise title (max 100 chars)."},
                    "summary": {"type": "string", "description": "Clean 1-3 sentence summary."},
                    "category": {"type": "string", "enum": [c.value for c in Category]},
                    "priority": {"type": "string", "enum": [p.value for p in Priority]},
                    "dueDate": {"type": "string", "description": "Due date YYYY-MM-DD (optional)."},
                },
                "required": ["title", "summary"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": UPDATE_TASK_STATUS,
            "description": "Change the status of a task found by search_tasks or created by create_task.",
            "parameters": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Task id."},
                    "status": {"type": "string", "enum": [s.value for s in TaskStatus]},
                },
                "required": ["id", "status"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": ARCHIVE_TASKS,
            "description": "Archive (delete) every task matching a search term.",
            "parameters": {
                "type": "object",
                "properties": {
                    "searchTerm": {"type": "string", "description": "Title, assignee or category to match."},
                },
                "required": ["searchTerm"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": ADD_TASK_NOTE,
            "description": "Append a note to a task.",
            "parameters": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Task id."},
                    "note": {"type": "string", "description": "Text to append."},
                },
                "required": ["id", "note"],
            },
        },
    },
]

TOOL_NAMES: Final[tuple[str, ...]] = tuple(d["function"]["name"] for d in TOOL_DECLARATIONS)

TOOL_PROGRESS: Final[dict[str, str]] = {
    SEARCH_TASKS: "🔎 Searching tasks",
    CREATE_TASK: "💾 Creating task",
    UPDATE_TASK_STATUS: "🔄 Updating task status",
    ARCHIVE_TASKS: "🗑️ Archiving tasks",
    ADD_TASK_NOTE: "📝 Adding note",
}


class UnknownToolError(KeyError):
    pass


@dataclass(slots=True, frozen=True)
class SearchTasksArgs:
    query: str


@dataclass(slots=True, frozen=True)
class CreateTaskArgs:
    title: str
    summary: str
    category: Category
    priority: Priority
    due_date: str | None


@dataclass(slots=True, frozen=True)
class UpdateTaskStatusArgs:
    task_id: str
    status: TaskStatus


@dataclass(slots=True, frozen=True)
class ArchiveTasksArgs:
    search_term: str


@dataclass(slots=True, frozen=True)
class AddTaskNoteArgs:
    task_id: str
    note: str


ToolArgs = SearchTasksArgs | CreateTaskArgs | UpdateTaskStatusArgs | ArchiveTasksArgs | AddTaskNoteArgs


def _required(raw: dict[str, Any], *keys: str) -> str:
    for k in keys:
        v = raw.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    raise ValueError(f"Missing required argument: {keys[0]}")


def _optional(raw: dict[str, Any], *keys: str) -> str | None:
    for k in keys:
        v = raw.get(k)
        if v is not None and str(v).strip():
            return str(v).strip()
    return None


def parse_tool_args(name: str, raw: dict[str, Any]) -> ToolArgs:
    """Decode raw provider arguments into the variant for `name`."""
    if name == SEARCH_TASKS:
        return SearchTasksArgs(query=_optional(raw, "query") or SEARCH_ALL)
    if name == CREATE_TASK:
        title = _required(raw, "title")
        return CreateTaskArgs(
            title=title[:100],
            summary=_optional(raw, "summary") or title,
            category=Category.from_raw(raw.get("category")),
            priority=Priority.from_raw(raw.get("priority")),
            due_date=_optional(raw, "dueDate", "due_date"),
        )
    if name == UPDATE_TASK_STATUS:
        status_raw = _required(raw, "status")
        return UpdateTaskStatusArgs(task_id=_required(raw, "id", "task_id"), status=TaskStatus.parse(status_raw))
    if name == ARCHIVE_TASKS:
        return ArchiveTasksArgs(search_term=_required(raw, "searchTerm", "search_term", "query"))
    if name == ADD_TASK_NOTE:
        return AddTaskNoteArgs(task_id=_required(raw, "id", "task_id"), note=_required(raw, "note"))
    raise UnknownToolError(name)


def task_summary(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status.value,
        "priority": task.priority.value,
        "category": task.category.value,
        "dueDate": task.due_date,
        "assignee": task.assignee,
    }


class ToolDispatcher:
    """
    Executes tool calls against the record store.

    One dispatcher serves one inbound message: records it creates are linked
    to that message's thread key and carry its context signature.
    """

    def __init__(
            self,
            store: RecordStore,
            *,
            thread_key: str | None = None,
            signature: str | None = None,
    ) -> None:
        self._store = store
        self._thread_key = thread_key
        self._signature = signature

    async def dispatch(self, name: str, raw_args: dict[str, Any] | None) -> ToolResult:
        try:
            args = parse_tool_args(name, dict(raw_args or {}))
        except UnknownToolError:
            logger.warning("Provider requested unknown tool %r", name)
            return ToolResult(name=name, error="Unknown tool")
        except ValueError as e:
            return ToolResult(name=name, error=str(e))

        try:
            data = await self._execute(args)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return ToolResult(name=name, error=str(e) or e.__class__.__name__)

        logger.info("Tool %s ok", name)
        return ToolResult(name=name, data=data)

    async def _execute(self, args: ToolArgs) -> dict[str, Any]:
        store = self._store

        if isinstance(args, SearchTasksArgs):
            tasks = await store.search(args.query)
            return {"tasks": [task_summary(t) for t in tasks], "count": len(tasks)}

        if isinstance(args, CreateTaskArgs):
            created = await store.create(
                TaskFields(
                    title=args.title,
                    summary=args.summary,
                    category=args.category,
                    priority=args.priority,
                    due_date=args.due_date,
                    context_signature=self._signature,
                    thread_key=self._thread_key,
                )
            )
            return {"id": created.id, "url": created.url}

        if isinstance(args, UpdateTaskStatusArgs):
            await store.update_status(args.task_id, args.status)
            return {"success": True}

        if isinstance(args, ArchiveTasksArgs):
            matches = await store.search(args.search_term)
            for task in matches:
                await store.archive(task.id)
            return {"success": True, "archived": len(matches)}

        if isinstance(args, AddTaskNoteArgs):
            await store.append_note(args.task_id, args.note)
            return {"success": True}

        raise UnknownToolError(type(args).__name__)
