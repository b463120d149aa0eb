# src/second_brain/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (LLM provider / record store),
- builds the digest scheduler for a given chat gateway.
"""

from __future__ import annotations

import asyncio
import logging

from ..config import get_settings
from ..core.dates import make_clock
from ..core.ports import ChatGateway, LLMProvider, RecordStore
from ..core.state import AppState
from ..llm.client import LLMError, OpenAICompatibleProvider, friendly_llm_error_message
from ..llm.offline import OfflineProvider
from ..tasks.briefings import send_morning_briefing, send_nightly_review
from ..tasks.notion_store import NotionStore
from ..tasks.task_scheduler import DigestJob, run_digest_scheduler
from ..tasks.task_store import SqliteTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.matrix_store_path.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_llm(settings) -> LLMProvider:
    try:
        return OpenAICompatibleProvider(settings)
    except LLMError as e:
        # Fallback for demos / local runs without external services.
        logger.warning("%s Using the offline provider.", friendly_llm_error_message(e))
        return OfflineProvider()


def resolve_store_backend(settings) -> str:
    backend = str(getattr(settings, "store_backend", "auto") or "auto").strip().lower()
    if backend == "auto":
        has_notion = bool(getattr(settings, "notion_token", None)) and bool(
            getattr(settings, "notion_database_id", "")
        )
        return "notion" if has_notion else "sqlite"
    if backend not in ("notion", "sqlite"):
        logger.warning("Unknown store backend %r; using sqlite", backend)
        return "sqlite"
    return backend


def build_store(settings, backend: str) -> RecordStore:
    if backend == "notion":
        return NotionStore(
            settings.notion_token,
            settings.notion_database_id,
            notion_version=settings.notion_version,
            base_url=settings.notion_base_url,
        )
    return SqliteTaskStore(settings.tasks_db_path)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    backend = resolve_store_backend(settings)
    state = AppState(
        settings=settings,
        llm=build_llm(settings),
        store=build_store(settings, backend),
        clock=make_clock(settings.reference_timezone),
        store_backend=backend,
    )
    logger.info(
        "State ready: store=%s capture_mode=%s model=%s",
        backend,
        settings.capture_mode,
        settings.llm_model,
    )
    return state


def build_digest_jobs(state: AppState, gateway: ChatGateway) -> list[DigestJob]:
    settings = state.settings
    channel = str(getattr(settings, "briefing_channel", "") or "")
    clock = make_clock(getattr(settings, "briefing_timezone", "UTC"))

    async def morning() -> None:
        await send_morning_briefing(store=state.store, llm=state.llm, gateway=gateway, channel=channel, clock=clock)

    async def nightly() -> None:
        await send_nightly_review(store=state.store, gateway=gateway, channel=channel, clock=clock)

    jobs = [
        DigestJob(name="morning_briefing", at=settings.morning_time, run=morning),
        DigestJob(name="nightly_review", at=settings.nightly_time, run=nightly),
    ]
    midday_time = getattr(settings, "midday_time", None)
    if midday_time is not None:
        # Midday status update reuses the morning briefing.
        jobs.append(DigestJob(name="midday_briefing", at=midday_time, run=morning))
    return jobs


def start_digest_scheduler(state: AppState, gateway: ChatGateway) -> asyncio.Task[None] | None:
    """Start the digest scheduler in the running loop, or return None when briefings are off."""
    settings = state.settings
    if not getattr(settings, "briefings_enabled", False):
        logger.info("Briefings disabled; digest scheduler not started.")
        return None

    return asyncio.create_task(
        run_digest_scheduler(
            build_digest_jobs(state, gateway),
            timezone=getattr(settings, "briefing_timezone", "UTC"),
        )
    )


async def close_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    aclose = getattr(state.store, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception:
        logger.debug("Record store close failed.", exc_info=True)
