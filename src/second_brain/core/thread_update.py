# src/second_brain/core/thread_update.py

"""
Thread-update classification and application.

`ThreadUpdateClassifier.classify` decides what a reply asks for and never
touches the store. `apply_update_decision` performs the matching mutation
and returns the confirmation text for the user.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from .dates import Clock, find_iso_date, format_reference_now, normalize_due_date, resolve_relative_date
from .json_extract import decode_json_loose
from .models import Task, TaskSnapshot, TaskStatus, UpdateAction, UpdateDecision, UpdatePayload
from .ports import LLMProvider, RecordStore
from .prompts import build_thread_update_prompt

logger = logging.getLogger(__name__)

COMPLETION_WORDS = ("done", "complete", "finished", "เสร็จ", "เรียบร้อย")
PROGRESS_WORDS = ("doing", "progress", "start", "working on", "กำลังทำ", "เริ่ม")
RESCHEDULE_WORDS = ("reschedule", "postpone", "move to", "push to", "เลื่อน")

NOTE_PREVIEW_CHARS = 100


def heuristic_decision(reply_text: str, original_signature: str, *, now: datetime) -> UpdateDecision:
    """Keyword fallback used when the provider cannot be asked or understood."""
    t = (reply_text or "").lower()

    if any(w in t for w in COMPLETION_WORDS):
        return UpdateDecision(
            action=UpdateAction.COMPLETED,
            updates=UpdatePayload(status=TaskStatus.DONE),
            signature=original_signature,
        )
    if any(w in t for w in PROGRESS_WORDS):
        return UpdateDecision(
            action=UpdateAction.IN_PROGRESS,
            updates=UpdatePayload(status=TaskStatus.IN_PROGRESS),
            signature=original_signature,
        )
    if any(w in t for w in RESCHEDULE_WORDS) or find_iso_date(t):
        return UpdateDecision(
            action=UpdateAction.RESCHEDULED,
            updates=UpdatePayload(due_date=resolve_relative_date(reply_text, now.date())),
            signature=original_signature,
        )
    return UpdateDecision(
        action=UpdateAction.DETAIL,
        updates=UpdatePayload(note=reply_text),
        signature=original_signature,
    )


def _decision_from_payload(
        payload: dict[str, Any],
        *,
        reply_text: str,
        original_signature: str,
        provider_signature: str | None,
        now: datetime,
) -> UpdateDecision:
    action = UpdateAction.from_raw(payload.get("action"))
    raw_updates = payload.get("updates")
    updates = raw_updates if isinstance(raw_updates, dict) else {}

    status: TaskStatus | None = None
    if action == UpdateAction.COMPLETED:
        status = TaskStatus.DONE
    elif action == UpdateAction.IN_PROGRESS:
        status = TaskStatus.IN_PROGRESS

    note = str(updates.get("note") or "").strip() or None
    if action == UpdateAction.DETAIL and not note:
        note = reply_text

    due_date: str | None = None
    if action == UpdateAction.RESCHEDULED:
        raw_due = updates.get("due_date") or updates.get("dueDate")
        due_date = normalize_due_date(raw_due, now.date()) or resolve_relative_date(reply_text, now.date())

    signature = (
        str(payload.get("thought_signature") or payload.get("signature") or "").strip()
        or (provider_signature or "")
        or original_signature
    )
    return UpdateDecision(
        action=action,
        updates=UpdatePayload(status=status, note=note, due_date=due_date),
        signature=signature,
    )


class ThreadUpdateClassifier:
    def __init__(self, llm: LLMProvider, clock: Clock, *, effort: str = "low") -> None:
        self._llm = llm
        self._clock = clock
        self._effort = effort

    async def classify(
            self,
            original_signature: str | None,
            reply_text: str,
            snapshot: TaskSnapshot | None,
            *,
            now: datetime | None = None,
    ) -> UpdateDecision:
        """Never raises. Falls back to keyword heuristics on any failure."""
        now = now or self._clock()
        original = original_signature or ""

        try:
            reply = await self._llm.extract(
                build_thread_update_prompt(reply_text, snapshot, format_reference_now(now)),
                self._effort,
            )
        except Exception:
            logger.exception("Update classification call failed; using keyword heuristics.")
            return heuristic_decision(reply_text, original, now=now)

        decoded = decode_json_loose(reply.text)
        if not isinstance(decoded, dict) or "action" not in decoded:
            logger.warning("Update classification not decodable; using keyword heuristics. raw=%r",
                           (reply.text or "")[:300])
            return heuristic_decision(reply_text, original, now=now)

        decision = _decision_from_payload(
            decoded,
            reply_text=reply_text,
            original_signature=original,
            provider_signature=reply.signature,
            now=now,
        )
        logger.info("Classified thread update as %s", decision.action.value)
        return decision


def _preview(text: str) -> str:
    if len(text) <= NOTE_PREVIEW_CHARS:
        return text
    return text[:NOTE_PREVIEW_CHARS] + "..."


async def apply_update_decision(
        store: RecordStore,
        task: Task,
        decision: UpdateDecision,
        reply_text: str,
        *,
        titled: bool = False,
) -> str:
    """
    Apply a classified update to `task` and return the user-facing confirmation.

    `titled=True` names the task in the message (used when the task was found
    by title rather than by thread).
    """
    action = decision.action
    updates = decision.updates
    name = f'"{task.title}"'

    if action == UpdateAction.COMPLETED:
        await store.update_status(task.id, TaskStatus.DONE)
        return f"✅ Updated {name} to Done!" if titled else "✅ Task marked as done!"

    if action == UpdateAction.IN_PROGRESS:
        await store.update_status(task.id, TaskStatus.IN_PROGRESS)
        return f"🚀 Updated {name} to In Progress!" if titled else "🚀 Status updated to In Progress!"

    if action == UpdateAction.DETAIL:
        note = updates.note or reply_text
        await store.append_note(task.id, note)
        return f"📝 Added note to {name}" if titled else f'📝 Added note: "{_preview(note)}"'

    if action == UpdateAction.RESCHEDULED:
        if not updates.due_date:
            return "⚠️ I couldn't work out the new date. Please reply with a date like 2025-01-31."
        await store.update_due_date(task.id, updates.due_date)
        return f"📅 Rescheduled {name} to {updates.due_date}" if titled else f"📅 Rescheduled to {updates.due_date}"

    if action == UpdateAction.DELETED:
        await store.archive(task.id)
        return f"🗑️ Archived {name}." if titled else "🗑️ Task has been archived/removed."

    return f"👌 Acknowledged update for {name}" if titled else "Got it!"
