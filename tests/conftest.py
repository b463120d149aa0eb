# tests/conftest.py

from __future__ import annotations

from datetime import datetime, time
from pathlib import Path
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from second_brain.core.capture import CaptureOrchestrator
from second_brain.core.state import AppState
from second_brain.tasks.task_store import SqliteTaskStore

from .fakes import InMemoryStore, RecordingGateway, ScriptedLLM

TZ = ZoneInfo("Asia/Bangkok")

# Friday. Relative dates in tests are resolved against this.
REFERENCE_NOW = datetime(2025, 1, 10, 9, 30, tzinfo=TZ)


@pytest.fixture()
def now() -> datetime:
    return REFERENCE_NOW


@pytest.fixture()
def clock():
    return lambda: REFERENCE_NOW


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the connectors.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="brain-test",
        data_dir=tmp_path,
        reference_timezone="Asia/Bangkok",
        capture_mode="agentic",
        agent_max_turns=5,
        thinking_level="low",
        llm_model="test-model",
        tasks_db_path=tmp_path / "tasks.sqlite3",
        briefings_enabled=True,
        briefing_channel="#briefings",
        briefing_timezone="Asia/Bangkok",
        morning_time=time(8, 0),
        nightly_time=time(21, 0),
    )


@pytest.fixture()
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture()
def sqlite_store(tmp_path: Path) -> SqliteTaskStore:
    return SqliteTaskStore(tmp_path / "tasks.sqlite3")


@pytest.fixture()
def state(settings: SimpleNamespace, llm: ScriptedLLM, store: InMemoryStore, clock) -> AppState:
    """AppState wired with deterministic fakes."""
    return AppState(settings=settings, llm=llm, store=store, clock=clock, store_backend="memory")


def make_orchestrator(llm, store, gateway, clock, *, mode: str = "agentic", max_turns: int = 5) -> CaptureOrchestrator:
    return CaptureOrchestrator(llm=llm, store=store, gateway=gateway, clock=clock, mode=mode, max_turns=max_turns)
