# tests/test_json_extract.py

from __future__ import annotations

from second_brain.core.json_extract import decode_json_loose


def test_direct_json() -> None:
    assert decode_json_loose('{"title": "x"}') == {"title": "x"}
    assert decode_json_loose('[{"a": 1}]') == [{"a": 1}]


def test_json_fence_wins_over_prose() -> None:
    text = 'Sure! Here you go:\n```json\n{"intent": "query"}\n```\nAnything else?'
    assert decode_json_loose(text) == {"intent": "query"}


def test_generic_fence() -> None:
    assert decode_json_loose('```\n{"a": 2}\n```') == {"a": 2}


def test_first_brace_object_in_prose() -> None:
    text = 'The result is {"action": "completed", "updates": {}} as requested.'
    assert decode_json_loose(text) == {"action": "completed", "updates": {}}


def test_trailing_brace_noise_falls_back_to_first_last_span() -> None:
    text = 'x {"a": {"b": 1}} y'
    assert decode_json_loose(text) == {"a": {"b": 1}}


def test_nothing_recoverable() -> None:
    assert decode_json_loose("") is None
    assert decode_json_loose("   ") is None
    assert decode_json_loose(None) is None
    assert decode_json_loose("no json at all {broken") is None
