# src/second_brain/tasks/notion_store.py

"""
Notion-backed record store over the public REST API (httpx).

Notion exposes two query paths:
- POST /data_sources/{id}/query   (newer; needs the data source id)
- POST /databases/{id}/query      (older; whole database)

The data source id is discovered once from GET /databases/{id} and cached for
the lifetime of the store. Every query tries the data source path first and
falls back to the database path when it is unavailable.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any

import httpx

from ..core.models import SEARCH_ALL, Category, CreatedRecord, Priority, Task, TaskFields, TaskStatus
from ..core.ports import RecordStoreError

logger = logging.getLogger(__name__)

PROP_TITLE = "Title"
PROP_SUMMARY = "Summary"
PROP_CATEGORY = "Category"
PROP_PRIORITY = "Priority"
PROP_DUE = "Due Date"
PROP_STATUS = "Status"
PROP_ASSIGNEE = "Assign to"
PROP_SIGNATURE = "ThoughtSignature"
PROP_THREAD_KEY = "ThreadKey"
LEGACY_THREAD_PROPS = ("SlackThreadTS",)

SEARCH_PAGE_SIZE = 15
EVERYTHING_TERMS = {SEARCH_ALL, "", "everything", "everyone"}
RICH_TEXT_CHUNK = 2000

_HEX32_RE = re.compile(r"[a-f0-9]{32}", re.IGNORECASE)

_PRIORITY_AND_DUE = [
    {"property": PROP_PRIORITY, "direction": "ascending"},
    {"property": PROP_DUE, "direction": "ascending"},
]


def extract_database_id(raw: str) -> str:
    """
    Pull a database id out of a Notion URL, an id with query params or a bare id.

    Returns the 32 hex chars when found; otherwise the cleaned input.
    """
    without_query = (raw or "").split("?")[0].split("#")[0]
    m = _HEX32_RE.search(without_query) or _HEX32_RE.search(without_query.replace("-", ""))
    if m:
        return m.group(0)

    cleaned = re.sub(r"[^a-fA-F0-9]", "", without_query)
    if len(cleaned) >= 32:
        return cleaned[:32]

    logger.warning("Could not extract a clean UUID from database id: %r", raw)
    return raw


def format_uuid(value: str) -> str:
    """32 hex chars -> 8-4-4-4-12; anything else is returned unchanged."""
    if "-" in value and len(value) == 36:
        return value
    if len(value) != 32:
        return value
    return f"{value[:8]}-{value[8:12]}-{value[12:16]}-{value[16:20]}-{value[20:]}"


def page_url(page_id: str) -> str:
    return f"https://notion.so/{page_id.replace('-', '')}"


def _rich_text(content: str) -> list[dict[str, Any]]:
    content = content or ""
    if not content:
        return [{"text": {"content": ""}}]
    return [
        {"text": {"content": content[i: i + RICH_TEXT_CHUNK]}}
        for i in range(0, len(content), RICH_TEXT_CHUNK)
    ]


def _plain(items: Any) -> str:
    if not isinstance(items, list):
        return ""
    parts = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = item.get("plain_text")
        if text is None:
            text = (item.get("text") or {}).get("content")
        parts.append(str(text or ""))
    return "".join(parts)


def page_to_task(page: dict[str, Any]) -> Task:
    props = page.get("properties") or {}

    def prop(name: str) -> dict[str, Any]:
        value = props.get(name)
        return value if isinstance(value, dict) else {}

    thread_key = _plain(prop(PROP_THREAD_KEY).get("rich_text"))
    if not thread_key:
        for legacy in LEGACY_THREAD_PROPS:
            thread_key = _plain(prop(legacy).get("rich_text"))
            if thread_key:
                break

    return Task(
        id=str(page.get("id") or ""),
        title=_plain(prop(PROP_TITLE).get("title")) or "Untitled",
        summary=_plain(prop(PROP_SUMMARY).get("rich_text")),
        category=Category.from_raw((prop(PROP_CATEGORY).get("select") or {}).get("name"), default=Category.WORK),
        priority=Priority.from_raw((prop(PROP_PRIORITY).get("select") or {}).get("name")),
        due_date=(prop(PROP_DUE).get("date") or {}).get("start") or None,
        status=TaskStatus.from_raw((prop(PROP_STATUS).get("status") or {}).get("name")),
        assignee=_plain(prop(PROP_ASSIGNEE).get("rich_text")) or None,
        context_signature=_plain(prop(PROP_SIGNATURE).get("rich_text")) or None,
        thread_key=thread_key or None,
    )


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
            message = body.get("message") if isinstance(body, dict) else None
        except ValueError:
            message = None
        return f"HTTP {exc.response.status_code}: {message or exc.response.text[:200]}"
    return f"{exc.__class__.__name__}: {exc}"


class NotionStore:
    def __init__(
            self,
            token: str,
            database_id: str,
            *,
            notion_version: str = "2022-06-28",
            base_url: str = "https://api.notion.com/v1",
            timeout_seconds: float = 30.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token:
            raise ValueError("Notion token is required")
        if not database_id:
            raise ValueError("Notion database id is required")

        self.database_id = format_uuid(extract_database_id(database_id))
        self._data_source_id: str | None = None
        self._discovered = False

        headers = {
            "Authorization": f"Bearer {token}",
            "Notion-Version": notion_version,
            "Content-Type": "application/json",
        }
        if client is None:
            client = httpx.AsyncClient(base_url=base_url.rstrip("/") + "/", timeout=timeout_seconds)
        self._client = client
        self._headers = headers

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- transport ----

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        resp = await self._client.request(method, path, json=json, headers=self._headers)
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, dict) else {}

    async def discover_data_source(self) -> str | None:
        """Return the cached data source id, discovering it on first use."""
        if self._discovered:
            return self._data_source_id

        try:
            database = await self._request("GET", f"databases/{self.database_id}")
        except httpx.HTTPError as e:
            # Not cached: a transient failure should not pin the fallback path forever.
            logger.warning("Data source discovery failed, using database_id fallback: %s", _describe(e))
            return None

        sources = database.get("data_sources") or []
        if sources and isinstance(sources[0], dict) and sources[0].get("id"):
            self._data_source_id = str(sources[0]["id"])
            logger.info("Discovered data source: %s", self._data_source_id)
        else:
            logger.warning("No data sources found in database %s. Using database_id directly.", self.database_id)
        self._discovered = True
        return self._data_source_id

    async def _query(self, body: dict[str, Any]) -> list[Task]:
        data_source_id = await self.discover_data_source()
        if data_source_id:
            try:
                data = await self._request("POST", f"data_sources/{data_source_id}/query", body)
                return [page_to_task(p) for p in data.get("results") or []]
            except httpx.HTTPError as e:
                logger.info("Data source query failed (%s); falling back to database query", _describe(e))

        data = await self._request("POST", f"databases/{self.database_id}/query", body)
        return [page_to_task(p) for p in data.get("results") or []]

    async def _lookup(self, body: dict[str, Any], what: str) -> list[Task]:
        try:
            return await self._query(body)
        except httpx.HTTPError as e:
            logger.error("Notion %s failed: %s", what, _describe(e))
            return []

    async def _patch_page(self, task_id: str, payload: dict[str, Any], what: str) -> None:
        try:
            await self._request("PATCH", f"pages/{task_id}", payload)
        except httpx.HTTPError as e:
            logger.error("Notion %s failed for %s: %s", what, task_id, _describe(e))
            raise RecordStoreError(f"{what} failed: {_describe(e)}") from e

    # ---- RecordStore ----

    async def create(self, fields: TaskFields) -> CreatedRecord:
        data_source_id = await self.discover_data_source()
        parent = (
            {"type": "data_source_id", "data_source_id": data_source_id}
            if data_source_id
            else {"type": "database_id", "database_id": self.database_id}
        )
        properties: dict[str, Any] = {
            PROP_TITLE: {"title": [{"text": {"content": fields.title[:100]}}]},
            PROP_SUMMARY: {"rich_text": _rich_text(fields.summary)},
            PROP_CATEGORY: {"select": {"name": fields.category.value}},
            PROP_PRIORITY: {"select": {"name": fields.priority.value}},
            PROP_DUE: {"date": {"start": fields.due_date} if fields.due_date else None},
            PROP_STATUS: {"status": {"name": fields.status.value}},
            PROP_ASSIGNEE: {"rich_text": _rich_text(fields.assignee or "")},
            PROP_SIGNATURE: {"rich_text": _rich_text(fields.context_signature or "")},
            PROP_THREAD_KEY: {"rich_text": _rich_text(fields.thread_key or "")},
        }

        try:
            page = await self._request("POST", "pages", {"parent": parent, "properties": properties})
        except httpx.HTTPError as e:
            logger.error("Failed to create Notion page: %s", _describe(e))
            raise RecordStoreError(f"Notion page creation failed: {_describe(e)}") from e

        page_id = str(page.get("id") or "")
        if not page_id:
            raise RecordStoreError("Notion page creation returned no id")
        return CreatedRecord(id=page_id, url=page_url(page_id))

    async def get(self, task_id: str) -> Task | None:
        try:
            page = await self._request("GET", f"pages/{task_id}")
        except httpx.HTTPError as e:
            logger.error("Notion page fetch failed for %s: %s", task_id, _describe(e))
            return None
        if page.get("archived") or page.get("in_trash"):
            return None
        return page_to_task(page)

    async def find_by_thread_key(self, key: str) -> Task | None:
        if not key:
            return None
        found = await self._lookup(
            {"filter": {"property": PROP_THREAD_KEY, "rich_text": {"equals": key}}},
            "thread lookup",
        )
        # Older pages only carry the legacy property; one query each, since a
        # database without that property rejects the whole filter.
        for legacy in LEGACY_THREAD_PROPS:
            if found:
                break
            found = await self._lookup(
                {"filter": {"property": legacy, "rich_text": {"equals": key}}},
                f"legacy thread lookup ({legacy})",
            )
        return found[0] if found else None

    async def find_by_fuzzy_title(self, text: str) -> Task | None:
        text = (text or "").strip()
        if not text:
            return None
        found = await self._lookup(
            {"filter": {"property": PROP_TITLE, "title": {"contains": text}}},
            "title lookup",
        )
        return found[0] if found else None

    async def search(self, term: str) -> list[Task]:
        """First SEARCH_PAGE_SIZE matches only, also for "all"; archive_tasks archives just these."""
        t = (term or "").strip()
        logger.debug("Searching Notion tasks. query=%r", t)
        if t.lower() in EVERYTHING_TERMS:
            flt: dict[str, Any] = {"property": PROP_STATUS, "status": {"does_not_equal": TaskStatus.DONE.value}}
        else:
            flt = {
                "or": [
                    {"property": PROP_TITLE, "title": {"contains": t}},
                    {"property": PROP_ASSIGNEE, "rich_text": {"contains": t}},
                    {"property": PROP_CATEGORY, "select": {"equals": t}},
                ]
            }
        return await self._lookup(
            {"filter": flt, "sorts": _PRIORITY_AND_DUE, "page_size": SEARCH_PAGE_SIZE},
            "search",
        )

    async def query_due(self, on_or_before: date) -> list[Task]:
        return await self._lookup(
            {
                "filter": {
                    "and": [
                        {"property": PROP_DUE, "date": {"on_or_before": on_or_before.isoformat()}},
                        {"property": PROP_STATUS, "status": {"does_not_equal": TaskStatus.DONE.value}},
                    ]
                },
                "sorts": _PRIORITY_AND_DUE,
            },
            "due query",
        )

    async def query_modified_since(self, since: datetime) -> list[Task]:
        start = since.isoformat()
        return await self._lookup(
            {
                "filter": {
                    "or": [
                        {"timestamp": "created_time", "created_time": {"on_or_after": start}},
                        {"timestamp": "last_edited_time", "last_edited_time": {"on_or_after": start}},
                    ]
                },
                "sorts": [{"timestamp": "created_time", "direction": "descending"}],
            },
            "modified query",
        )

    async def update_status(self, task_id: str, status: TaskStatus) -> None:
        await self._patch_page(
            task_id,
            {"properties": {PROP_STATUS: {"status": {"name": status.value}}}},
            "Status update",
        )

    async def append_note(self, task_id: str, text: str) -> None:
        try:
            page = await self._request("GET", f"pages/{task_id}")
        except httpx.HTTPError as e:
            raise RecordStoreError(f"Note append failed: {_describe(e)}") from e

        current = page_to_task(page).summary
        updated = f"{current}\n\n[Update]: {text}" if current else text
        await self._patch_page(
            task_id,
            {"properties": {PROP_SUMMARY: {"rich_text": _rich_text(updated)}}},
            "Note append",
        )

    async def update_due_date(self, task_id: str, due_date: str) -> None:
        await self._patch_page(
            task_id,
            {"properties": {PROP_DUE: {"date": {"start": due_date}}}},
            "Due date update",
        )

    async def archive(self, task_id: str) -> None:
        await self._patch_page(task_id, {"archived": True}, "Archive")
        logger.info("Archived Notion page %s", task_id)
