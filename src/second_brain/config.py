# src/second_brain/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once by the composition root.
- No secrets required at import time.
- Unprefixed names used by older deployments (GEMINI_API_KEY, NOTION_TOKEN, ...) still work.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "BRAIN"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_time(name: str, default: time) -> time:
    """Parse HH:MM; malformed values fall back to the default."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        hh, mm = raw.strip().split(":", 1)
        return time(hour=int(hh), minute=int(mm))
    except ValueError:
        return default


def _env_optional_time(name: str) -> Optional[time]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return _env_time(name, time(12, 0))


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Reference time ----
    reference_timezone: str

    # ---- Capture flow ----
    capture_mode: str  # "agentic" | "legacy"
    agent_max_turns: int
    thinking_level: str

    # ---- LLM (OpenAI-compatible endpoint) ----
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_model: str
    llm_timeout_seconds: float
    llm_send_reasoning_effort: bool

    # ---- Record store ----
    store_backend: str  # "auto" | "notion" | "sqlite"
    notion_token: Optional[str]
    notion_database_id: str
    notion_version: str
    notion_base_url: str
    tasks_db_path: Path

    # ---- Connectors ----
    console_enabled: bool
    matrix_enabled: bool
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_rooms: List[str]
    matrix_store_path: Path

    # ---- Briefings ----
    briefings_enabled: bool
    briefing_channel: str
    briefing_timezone: str
    morning_time: time
    nightly_time: time
    midday_time: Optional[time]  # off unless set

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv_if_available()

        app_name = _env(_k("APP_NAME"), "second-brain")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/second_brain"))

        reference_timezone = _first_env(_k("TIMEZONE"), "TIMEZONE", default="Asia/Bangkok") or "Asia/Bangkok"

        capture_mode = _env(_k("CAPTURE_MODE"), "agentic").strip().lower()
        if capture_mode not in {"agentic", "legacy"}:
            capture_mode = "agentic"
        agent_max_turns = max(1, _env_int(_k("AGENT_MAX_TURNS"), 5))
        thinking_level = _env(_k("THINKING_LEVEL"), "low").strip().lower() or "low"

        llm_api_key = _first_env(_k("LLM_API_KEY"), "GEMINI_API_KEY", "OPENAI_API_KEY", default=None)
        llm_base_url = _env(
            _k("LLM_BASE_URL"),
            "https://generativelanguage.googleapis.com/v1beta/openai/",
        )
        llm_model = _env(_k("LLM_MODEL"), "gemini-3-flash-preview")
        llm_timeout_seconds = _env_float(_k("LLM_TIMEOUT_SECONDS"), 60.0)
        llm_send_reasoning_effort = _env_bool(_k("LLM_SEND_REASONING_EFFORT"), True)

        store_backend = _env(_k("STORE_BACKEND"), "auto").strip().lower()
        if store_backend not in {"auto", "notion", "sqlite"}:
            store_backend = "auto"
        notion_token = _first_env(_k("NOTION_TOKEN"), "NOTION_TOKEN", default=None)
        notion_database_id = (_first_env(_k("NOTION_DATABASE_ID"), "NOTION_DATABASE_ID", default="") or "").strip()
        notion_version = _env(_k("NOTION_VERSION"), "2022-06-28")
        notion_base_url = _env(_k("NOTION_BASE_URL"), "https://api.notion.com/v1")
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)
        matrix_homeserver = (_first_env(_k("MATRIX_HOMESERVER"), "MATRIX_HOMESERVER", default="") or "").strip()
        matrix_user_id = (_first_env(_k("MATRIX_USER_ID"), "MATRIX_USER_ID", default="") or "").strip()
        matrix_password = (_first_env(_k("MATRIX_PASSWORD"), "MATRIX_PASSWORD", default="") or "").strip()
        matrix_rooms = _env_list(_k("MATRIX_ROOMS"), [])
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        briefings_enabled = _env_bool(_k("BRIEFINGS_ENABLED"), True)
        briefing_channel = (_first_env(_k("BRIEFING_CHANNEL"), "BRIEFING_CHANNEL_ID", default="") or "").strip()
        briefing_timezone = _env(_k("BRIEFING_TIMEZONE"), reference_timezone)
        morning_time = _env_time(_k("MORNING_TIME"), time(8, 0))
        nightly_time = _env_time(_k("NIGHTLY_TIME"), time(21, 0))
        midday_time = _env_optional_time(_k("MIDDAY_TIME"))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            reference_timezone=reference_timezone,
            capture_mode=capture_mode,
            agent_max_turns=agent_max_turns,
            thinking_level=thinking_level,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_model=llm_model,
            llm_timeout_seconds=llm_timeout_seconds,
            llm_send_reasoning_effort=llm_send_reasoning_effort,
            store_backend=store_backend,
            notion_token=notion_token,
            notion_database_id=notion_database_id,
            notion_version=notion_version,
            notion_base_url=notion_base_url,
            tasks_db_path=tasks_db_path,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_rooms=matrix_rooms,
            matrix_store_path=matrix_store_path,
            briefings_enabled=briefings_enabled,
            briefing_channel=briefing_channel,
            briefing_timezone=briefing_timezone,
            morning_time=morning_time,
            nightly_time=nightly_time,
            midday_time=midday_time,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, building them on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
