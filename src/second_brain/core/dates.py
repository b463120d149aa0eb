# src/second_brain/core/dates.py

"""
Reference-time helpers.

Relative phrases ("today", "tomorrow", "next Monday") are always resolved
against the caller's clock in the reference timezone, never the provider's.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")

_WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_NUMBER_WORDS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "seven": 7}


def make_clock(tz_name: str) -> Clock:
    tz = ZoneInfo(tz_name)

    def _now() -> datetime:
        return datetime.now(tz)

    return _now


def format_reference_now(now: datetime) -> str:
    """Human-readable 'now' for prompts, e.g. 'Friday 2025-01-10 09:30 (Asia/Bangkok)'."""
    tz = getattr(now.tzinfo, "key", None) or now.strftime("%Z") or "UTC"
    return f"{now.strftime('%A %Y-%m-%d %H:%M')} ({tz})"


def find_iso_date(text: str) -> str | None:
    m = _ISO_DATE_RE.search(text or "")
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3))).isoformat()
    except ValueError:
        return None


def is_iso_date(value: str | None) -> bool:
    if not value:
        return False
    try:
        date.fromisoformat(value.strip()[:10])
    except ValueError:
        return False
    return len(value.strip()) >= 10


def resolve_relative_date(text: str, today: date) -> str | None:
    """
    Find a date in free text and return it as YYYY-MM-DD.

    Understands ISO dates, today/tonight, tomorrow, day after tomorrow,
    next <weekday>, this/on <weekday>, in N days/weeks, next week.
    """
    if not text:
        return None

    iso = find_iso_date(text)
    if iso:
        return iso

    t = " ".join(text.lower().split())

    if "day after tomorrow" in t:
        return (today + timedelta(days=2)).isoformat()
    if "tomorrow" in t or "พรุ่งนี้" in t:
        return (today + timedelta(days=1)).isoformat()
    if re.search(r"\b(today|tonight)\b", t) or "วันนี้" in t:
        return today.isoformat()

    m = re.search(r"\bin\s+(\d+|" + "|".join(_NUMBER_WORDS) + r")\s+(day|days|week|weeks)\b", t)
    if m:
        raw_n = m.group(1)
        n = int(raw_n) if raw_n.isdigit() else _NUMBER_WORDS[raw_n]
        days = n * 7 if m.group(2).startswith("week") else n
        return (today + timedelta(days=days)).isoformat()

    m = re.search(r"\b(next|this|on)?\s*(" + "|".join(_WEEKDAYS) + r")\b", t)
    if m:
        target = _WEEKDAYS[m.group(2)]
        delta = (target - today.weekday()) % 7
        if m.group(1) == "next" or delta == 0:
            delta = delta or 7
        return (today + timedelta(days=delta)).isoformat()

    if re.search(r"\bnext week\b", t):
        # Monday of the following week.
        return (today + timedelta(days=7 - today.weekday())).isoformat()

    return None


def normalize_due_date(raw: object, today: date) -> str:
    """Coerce a provider due date into YYYY-MM-DD or ''."""
    s = str(raw or "").strip()
    if not s or s.lower() in {"null", "none", "n/a"}:
        return ""
    if is_iso_date(s):
        return s[:10]
    return resolve_relative_date(s, today) or ""
