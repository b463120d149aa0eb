# src/second_brain/connectors/matrix_client.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse

logger = logging.getLogger(__name__)


def _session_path(store_dir: Path) -> Path:
    return store_dir / "session.json"


def load_session(path: Path) -> dict[str, str]:
    """Read session.json; raises ValueError when it is not a complete session."""
    val = json.loads(path.read_text("utf-8"))
    if not isinstance(val, dict):
        raise ValueError("Expected JSON object")
    missing = [k for k in ("access_token", "user_id", "device_id") if not val.get(k)]
    if missing:
        raise ValueError(f"session.json is missing required fields: {', '.join(missing)}")
    return {k: str(val[k]) for k in ("access_token", "user_id", "device_id")}


def save_session(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        os.chmod(path, 0o600)


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Create a Matrix AsyncClient, restoring session.json when present.

    session.json keeps the access token/device id across restarts so the bot
    only needs BRAIN_MATRIX_PASSWORD once. It contains secrets and lives under
    the gitignored data dir.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/second_brain/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set BRAIN_MATRIX_HOMESERVER and BRAIN_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = _session_path(store_dir)

    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False),
    )

    # ---- Session restore ----
    if session_file.exists():
        try:
            data = load_session(session_file)
            client.access_token = data["access_token"]
            client.user_id = data["user_id"]
            client.device_id = data["device_id"]
            logger.info("Matrix session restored for %s", client.user_id)
            return client
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore Matrix session.json, will try password login: %r", e)

    # ---- Password login bootstrap ----
    if not password:
        logger.error(
            "Matrix session.json not found and password is not set. "
            "Set BRAIN_MATRIX_PASSWORD once to bootstrap a session."
        )
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'second-brain')} (Python)"
    logger.info("Logging in to Matrix to bootstrap a new session (device_name=%r)...", device_name)

    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        save_session(
            session_file,
            {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
        )
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        # The session still works for this run; it just won't survive a restart.
        logger.error("Failed to write Matrix session.json (%s): %r", session_file, e)

    return client
