# tests/test_parser.py

from __future__ import annotations

import json

import pytest

from second_brain.core.conversation import ProviderText
from second_brain.core.models import Category, Intent, Priority
from second_brain.core.parser import (
    ParseError,
    StructuredParser,
    bulleted_items,
    fallback_signature,
    split_list_items,
)

from .fakes import ScriptedLLM


@pytest.mark.asyncio
async def test_new_task_with_relative_due_date(clock, now) -> None:
    reply = json.dumps(
        {
            "title": "Buy milk",
            "clean_summary": "Buy milk.",
            "category": "Personal",
            "priority": "P3 (normal)",
            "due_date": "tomorrow",
            "intent": "new_task",
        }
    )
    parser = StructuredParser(ScriptedLLM(extract=[reply]), clock)

    result = await parser.extract("Buy milk tomorrow", now=now)

    assert len(result.extractions) == 1
    ex = result.extractions[0]
    assert ex.intent == Intent.NEW_TASK
    assert ex.title == "Buy milk"
    assert ex.due_date == "2025-01-11"
    assert ex.priority == Priority.P3
    assert not result.degraded


@pytest.mark.asyncio
async def test_provider_failure_degrades_to_local_extraction(clock, now) -> None:
    parser = StructuredParser(ScriptedLLM(extract=[RuntimeError("boom")]), clock)

    result = await parser.extract("Buy milk tomorrow", now=now)

    assert result.degraded
    [ex] = result.extractions
    assert ex.intent == Intent.NEW_TASK
    assert ex.title == "Buy milk tomorrow"
    assert ex.due_date == "2025-01-11"
    assert result.signature == fallback_signature("Buy milk tomorrow")


@pytest.mark.asyncio
async def test_malformed_output_never_raises(clock, now) -> None:
    text = "x" * 80
    parser = StructuredParser(ScriptedLLM(extract=["I'm not sure what you mean {oops"]), clock)

    result = await parser.extract(text, now=now)

    [ex] = result.extractions
    assert len(ex.title) == 50
    assert ex.category == Category.PERSONAL
    assert result.signature.startswith("fallback_")


@pytest.mark.asyncio
async def test_fenced_list_output_and_provider_signature(clock, now) -> None:
    payload = [
        {"title": "Email Bob", "intent": "new_task", "category": "Work", "priority": "P1"},
        {"title": "x", "intent": "query", "search_query": "all"},
    ]
    reply = ProviderText(text="```json\n" + json.dumps(payload) + "\n```", signature="sig-123")
    parser = StructuredParser(ScriptedLLM(extract=[reply]), clock)

    result = await parser.extract("email bob, and what do I have?", now=now)

    assert [e.intent for e in result.extractions] == [Intent.NEW_TASK, Intent.QUERY]
    assert result.extractions[0].category == Category.WORK
    assert result.extractions[0].priority == Priority.P1
    assert result.extractions[1].searches_everything
    assert result.signature == "sig-123"


@pytest.mark.asyncio
async def test_list_input_yields_one_extraction_per_item(clock, now) -> None:
    # Provider merges the list into one record; each item is parsed on its own.
    llm = ScriptedLLM(extract=['{"title": "Groceries", "intent": "new_task"}'])
    parser = StructuredParser(llm, clock)

    result = await parser.extract("- milk\n- eggs\n- bread", now=now)

    assert [e.title for e in result.extractions] == ["milk", "eggs", "bread"]
    assert len([c for c in llm.calls if c[0] == "extract"]) == 4


@pytest.mark.asyncio
async def test_multiline_prose_keeps_single_extraction(clock, now) -> None:
    llm = ScriptedLLM(extract=['{"title": "Call the dentist", "intent": "new_task"}'])
    parser = StructuredParser(llm, clock)

    result = await parser.extract("Call the dentist\nThey open at 9 on Monday", now=now)

    assert [e.title for e in result.extractions] == ["Call the dentist"]
    assert len([c for c in llm.calls if c[0] == "extract"]) == 1


@pytest.mark.asyncio
async def test_multiline_prose_falls_back_per_line_when_provider_fails(clock, now) -> None:
    parser = StructuredParser(ScriptedLLM(extract=[RuntimeError("boom")]), clock)

    result = await parser.extract("Call the dentist\nBook flights", now=now)

    assert result.degraded
    assert [e.title for e in result.extractions] == ["Call the dentist", "Book flights"]


@pytest.mark.asyncio
async def test_update_and_delete_fill_target_title(clock, now) -> None:
    reply = json.dumps([{"title": "View", "intent": "delete_task"}])
    parser = StructuredParser(ScriptedLLM(extract=[reply]), clock)

    result = await parser.extract("delete all tasks for View", now=now)

    [ex] = result.extractions
    assert ex.intent == Intent.DELETE_TASK
    assert ex.target_title == "View"


@pytest.mark.asyncio
async def test_extract_one_raises_on_undecodable_output(clock, now) -> None:
    parser = StructuredParser(ScriptedLLM(extract=["nope"]), clock)

    with pytest.raises(ParseError):
        await parser.extract_one("Buy milk", now=now)


@pytest.mark.asyncio
async def test_extract_one_salts_fallback_signature(clock, now) -> None:
    parser = StructuredParser(ScriptedLLM(extract=['{"title": "Buy milk"}']), clock)

    single = await parser.extract_one("Buy milk", now=now)

    assert single.extraction.title == "Buy milk"
    assert single.signature.startswith("fallback_")
    assert single.signature != fallback_signature("Buy milk")


def test_fallback_signature_is_deterministic_per_text() -> None:
    assert fallback_signature("a") == fallback_signature("a")
    assert fallback_signature("a") != fallback_signature("b")
    assert len(fallback_signature("a")) == len("fallback_") + 32


def test_split_list_items() -> None:
    assert split_list_items("just one line") == []
    assert split_list_items("1. one\n2. two") == ["one", "two"]
    assert split_list_items("first\n\nsecond") == ["first", "second"]
    assert bulleted_items("first\nsecond") == []
    assert bulleted_items("- milk\n* eggs") == ["milk", "eggs"]
