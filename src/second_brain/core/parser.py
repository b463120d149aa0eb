# src/second_brain/core/parser.py

"""
Structured parser: free text -> ThoughtExtraction records.

Two entry points:
- `extract`: multi-extraction. Never raises; any provider or decode failure
  degrades to locally manufactured extractions.
- `extract_one`: single-extraction (older capture flow). Raises ParseError
  when the provider output cannot be decoded.

Every successful parse carries a context signature. When the provider does not
return one, a fallback is hashed locally from the input text.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from .dates import Clock, format_reference_now, normalize_due_date, resolve_relative_date
from .json_extract import decode_json_loose
from .models import Category, Intent, Priority, ThoughtExtraction
from .ports import LLMProvider
from .prompts import build_multi_extraction_prompt, build_single_extraction_prompt

logger = logging.getLogger(__name__)

FALLBACK_TITLE_CHARS = 50

_BULLET_RE = re.compile(r"^\s*(?:[-*•·]|\d+[.)]|\[[ xX]?\])\s+(.+?)\s*$")


class ParseError(RuntimeError):
    pass


@dataclass(slots=True)
class ParseResult:
    extractions: list[ThoughtExtraction]
    signature: str
    degraded: bool = False


@dataclass(slots=True)
class SingleParseResult:
    extraction: ThoughtExtraction
    signature: str


def split_list_items(text: str) -> list[str]:
    """
    Return the individual items of a list-shaped message, or [] if it is not one.

    Bulleted/numbered lines win; otherwise two or more non-empty lines count
    as line-separated items (used by the local fallback).
    """
    lines = [ln for ln in (text or "").splitlines() if ln.strip()]
    if len(lines) < 2:
        return []

    bullets = bulleted_items(text)
    if len(bullets) >= 2:
        return bullets

    return [ln.strip() for ln in lines]


def bulleted_items(text: str) -> list[str]:
    """Items of bulleted/numbered lines only; plain prose lines are not counted."""
    lines = [ln for ln in (text or "").splitlines() if ln.strip()]
    return [m.group(1) for m in (_BULLET_RE.match(ln) for ln in lines) if m]


def fallback_signature(text: str, *, salt: str = "") -> str:
    digest = hashlib.sha256(f"{text}\x00{salt}".encode("utf-8")).hexdigest()
    return f"fallback_{digest[:32]}"


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() in {"null", "none"}:
        return None
    return s


def _pick(payload: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in payload and payload[k] is not None:
            return payload[k]
    return None


def fallback_extraction(text: str, today: date) -> ThoughtExtraction:
    """Deterministic new_task built from the first characters of the input."""
    cleaned = " ".join((text or "").split())
    title = cleaned[:FALLBACK_TITLE_CHARS].strip() or "Untitled thought"
    return ThoughtExtraction(
        title=title,
        summary=cleaned,
        category=Category.PERSONAL,
        priority=Priority.P3,
        due_date=resolve_relative_date(cleaned, today) or "",
        assignee=None,
        intent=Intent.NEW_TASK,
    )


def extraction_from_payload(payload: dict[str, Any], *, source_text: str, today: date) -> ThoughtExtraction:
    """Build an extraction from a provider object, filling whatever is missing."""
    summary = _clean(_pick(payload, "clean_summary", "summary", "cleanSummary")) or ""
    title = _clean(_pick(payload, "title")) or (summary or " ".join(source_text.split()))[:FALLBACK_TITLE_CHARS]
    title = title.strip() or "Untitled thought"

    intent = Intent.from_raw(_pick(payload, "intent"))
    target = _clean(_pick(payload, "target_task_title", "targetTitle", "target_title"))
    search_query = _clean(_pick(payload, "search_query", "searchQuery"))

    if intent in (Intent.UPDATE_TASK, Intent.DELETE_TASK) and not target:
        target = title
    if intent == Intent.QUERY and not search_query:
        search_query = source_text.strip() or None

    return ThoughtExtraction(
        title=title[:100],
        summary=summary or title,
        category=Category.from_raw(_pick(payload, "category")),
        priority=Priority.from_raw(_pick(payload, "priority")),
        due_date=normalize_due_date(_pick(payload, "due_date", "dueDate"), today),
        assignee=_clean(_pick(payload, "assignee", "assign_to")),
        intent=intent,
        target_title=target,
        search_query=search_query,
    )


def _payload_items(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, list):
        return [v for v in value if isinstance(v, dict)]
    if isinstance(value, dict):
        for key in ("items", "extractions", "tasks"):
            inner = value.get(key)
            if isinstance(inner, list):
                return [v for v in inner if isinstance(v, dict)]
        return [value]
    return []


class StructuredParser:
    def __init__(self, llm: LLMProvider, clock: Clock) -> None:
        self._llm = llm
        self._clock = clock

    async def extract(
            self,
            text: str,
            thinking_level: str = "low",
            *,
            now: datetime | None = None,
    ) -> ParseResult:
        now = now or self._clock()
        today = now.date()
        items = split_list_items(text)

        try:
            reply = await self._llm.extract(
                build_multi_extraction_prompt(text, format_reference_now(now)),
                thinking_level,
            )
        except Exception:
            logger.exception("Extraction call failed; using local fallback.")
            return self._degraded(text, items, today)

        payloads = _payload_items(decode_json_loose(reply.text))
        if not payloads:
            logger.warning("Extraction output not decodable; using local fallback. raw=%r", (reply.text or "")[:300])
            return self._degraded(text, items, today, signature=reply.signature)

        extractions = [extraction_from_payload(p, source_text=text, today=today) for p in payloads]
        signature = reply.signature or fallback_signature(text)

        bullets = bulleted_items(text)
        if len(bullets) > 1 and len(extractions) < len(bullets):
            # Provider merged list items; parse each one on its own.
            logger.info("Provider returned %d extractions for %d list items; re-parsing per item.",
                        len(extractions), len(bullets))
            extractions = []
            for item in bullets:
                single = await self.extract(item, thinking_level, now=now)
                extractions.extend(single.extractions[:1])

        logger.debug("Parsed %d extraction(s): %s", len(extractions), [e.intent.value for e in extractions])
        return ParseResult(extractions=extractions, signature=signature)

    def _degraded(
            self,
            text: str,
            items: list[str],
            today: date,
            *,
            signature: str | None = None,
    ) -> ParseResult:
        sources = items if len(items) > 1 else [text]
        return ParseResult(
            extractions=[fallback_extraction(s, today) for s in sources],
            signature=signature or fallback_signature(text),
            degraded=True,
        )

    async def extract_one(
            self,
            text: str,
            thinking_level: str = "low",
            *,
            now: datetime | None = None,
    ) -> SingleParseResult:
        now = now or self._clock()

        try:
            reply = await self._llm.extract(
                build_single_extraction_prompt(text, format_reference_now(now)),
                thinking_level,
            )
        except Exception as e:
            raise ParseError(f"Failed to analyze thought: {e}") from e

        payloads = _payload_items(decode_json_loose(reply.text))
        if not payloads:
            raise ParseError(f"Failed to extract JSON from provider response: {(reply.text or '')[:500]}")

        extraction = extraction_from_payload(payloads[0], source_text=text, today=now.date())
        signature = reply.signature or fallback_signature(
            f"{text}-{extraction.title}", salt=str(time.time_ns())
        )
        return SingleParseResult(extraction=extraction, signature=signature)
