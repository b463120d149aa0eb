# tests/test_dates.py

from __future__ import annotations

from datetime import date

import pytest

from second_brain.core.dates import find_iso_date, is_iso_date, normalize_due_date, resolve_relative_date

TODAY = date(2025, 1, 10)  # Friday


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("buy milk tomorrow", "2025-01-11"),
        ("call mom today", "2025-01-10"),
        ("pay rent day after tomorrow", "2025-01-12"),
        ("report next monday", "2025-01-13"),
        ("gym on friday", "2025-01-17"),
        ("in 3 days", "2025-01-13"),
        ("in two weeks", "2025-01-24"),
        ("ส่งงานพรุ่งนี้", "2025-01-11"),
        ("due 2025-02-01 please", "2025-02-01"),
    ],
)
def test_resolve_relative_date(text: str, expected: str) -> None:
    assert resolve_relative_date(text, TODAY) == expected


def test_resolve_relative_date_without_date() -> None:
    assert resolve_relative_date("think about life", TODAY) is None
    assert resolve_relative_date("", TODAY) is None


def test_iso_helpers() -> None:
    assert find_iso_date("moved to 2025-13-40") is None
    assert find_iso_date("moved to 2025-03-04!") == "2025-03-04"
    assert is_iso_date("2025-01-31T10:00:00")
    assert not is_iso_date("31/01/2025")
    assert not is_iso_date(None)


def test_normalize_due_date() -> None:
    assert normalize_due_date("2025-01-31T00:00:00Z", TODAY) == "2025-01-31"
    assert normalize_due_date("null", TODAY) == ""
    assert normalize_due_date(None, TODAY) == ""
    assert normalize_due_date("tomorrow", TODAY) == "2025-01-11"
    assert normalize_due_date("sometime", TODAY) == ""
