# src/second_brain/core/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

ThinkingLevel = Literal["minimal", "low", "medium", "high"]

# Sentinel search term meaning "every open record".
SEARCH_ALL = "all"


class Intent(StrEnum):
    NEW_TASK = "new_task"
    UPDATE_TASK = "update_task"
    QUERY = "query"
    DELETE_TASK = "delete_task"

    @classmethod
    def from_raw(cls, raw: object) -> Intent:
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.NEW_TASK


class Category(StrEnum):
    WORK = "Work"
    PERSONAL = "Personal"
    IDEA = "Idea"
    HEALTH = "Health"

    @classmethod
    def from_raw(cls, raw: object, default: Category | None = None) -> Category:
        s = str(raw or "").strip().lower()
        for member in cls:
            if member.value.lower() == s:
                return member
        return default or cls.PERSONAL


class Priority(StrEnum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @classmethod
    def from_raw(cls, raw: object) -> Priority:
        # Accept "P1 (urgent)", "p2", "1".
        s = str(raw or "").strip().upper()
        if s[:1].isdigit():
            s = "P" + s
        for member in cls:
            if s.startswith(member.value):
                return member
        return cls.P3


class TaskStatus(StrEnum):
    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    DONE = "Done"

    @classmethod
    def from_raw(cls, raw: object) -> TaskStatus:
        s = str(raw or "").strip().lower().replace("_", " ")
        for member in cls:
            if member.value.lower() == s:
                return member
        return cls.TODO

    @classmethod
    def parse(cls, raw: object) -> TaskStatus:
        """Strict variant of `from_raw` for tool arguments: unknown values raise ValueError."""
        s = " ".join(str(raw or "").strip().lower().replace("_", " ").replace("-", " ").split())
        status = _STATUS_SYNONYMS.get(s)
        if status is None:
            raise ValueError(f"Invalid status: {raw!r}")
        return status


_STATUS_SYNONYMS: dict[str, TaskStatus] = {
    "todo": TaskStatus.TODO,
    "to do": TaskStatus.TODO,
    "open": TaskStatus.TODO,
    "in progress": TaskStatus.IN_PROGRESS,
    "inprogress": TaskStatus.IN_PROGRESS,
    "started": TaskStatus.IN_PROGRESS,
    "doing": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
    "complete": TaskStatus.DONE,
    "finished": TaskStatus.DONE,
}


class UpdateAction(StrEnum):
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    DETAIL = "detail"
    RESCHEDULED = "rescheduled"
    DELETED = "deleted"
    UNCHANGED = "unchanged"

    @classmethod
    def from_raw(cls, raw: object) -> UpdateAction:
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.UNCHANGED


@dataclass(slots=True)
class ThoughtExtraction:
    """One structured intent parsed from free text."""

    title: str
    summary: str
    category: Category = Category.PERSONAL
    priority: Priority = Priority.P3
    due_date: str = ""  # ISO YYYY-MM-DD or empty
    assignee: str | None = None
    intent: Intent = Intent.NEW_TASK
    target_title: str | None = None
    search_query: str | None = None

    @property
    def searches_everything(self) -> bool:
        return (self.search_query or "").strip().lower() == SEARCH_ALL


@dataclass(slots=True, frozen=True)
class TaskSnapshot:
    title: str
    summary: str
    status: str


@dataclass(slots=True)
class Task:
    id: str
    title: str
    summary: str = ""
    category: Category = Category.PERSONAL
    priority: Priority = Priority.P3
    due_date: str | None = None
    status: TaskStatus = TaskStatus.TODO
    assignee: str | None = None
    context_signature: str | None = None
    thread_key: str | None = None

    def snapshot(self) -> TaskSnapshot:
        return TaskSnapshot(title=self.title, summary=self.summary, status=self.status.value)


@dataclass(slots=True)
class TaskFields:
    """Fields for a record about to be created."""

    title: str
    summary: str = ""
    category: Category = Category.PERSONAL
    priority: Priority = Priority.P3
    due_date: str | None = None
    assignee: str | None = None
    context_signature: str | None = None
    thread_key: str | None = None
    status: TaskStatus = TaskStatus.TODO

    @classmethod
    def from_extraction(
        cls,
        extraction: ThoughtExtraction,
        *,
        signature: str | None,
        thread_key: str | None,
    ) -> TaskFields:
        return cls(
            title=extraction.title,
            summary=extraction.summary,
            category=extraction.category,
            priority=extraction.priority,
            due_date=extraction.due_date or None,
            assignee=extraction.assignee,
            context_signature=signature,
            thread_key=thread_key,
        )


@dataclass(slots=True, frozen=True)
class CreatedRecord:
    id: str
    url: str


@dataclass(slots=True)
class UpdatePayload:
    status: TaskStatus | None = None
    note: str | None = None
    due_date: str | None = None


@dataclass(slots=True)
class UpdateDecision:
    """What a thread reply asks for. Applying it is the caller's job."""

    action: UpdateAction
    updates: UpdatePayload = field(default_factory=UpdatePayload)
    signature: str = ""


@dataclass(slots=True, frozen=True)
class InboundMessage:
    channel: str
    user: str
    text: str
    message_id: str
    thread_key: str | None = None
