# src/second_brain/connectors/matrix_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from typing import Any

from nio import AsyncClient, MatrixRoom, RoomMessageText, RoomSendResponse

from ..cli.bootstrap import start_digest_scheduler
from ..cli.commands import registry as command_registry
from ..core.models import InboundMessage
from ..core.state import AppState
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)

SEEN_EVENTS_LIMIT = 2048


def _ms_now() -> int:
    return int(time.time() * 1000)


def _room_allowlist(settings_rooms: list[str]) -> set[str] | None:
    rooms = [r.strip() for r in (settings_rooms or []) if str(r).strip()]
    return set(rooms) if rooms else None


def thread_root_of(source: dict[str, Any]) -> str | None:
    """Return the thread root event id of a Matrix event, or None if it is not in a thread."""
    content = (source or {}).get("content") or {}
    relates = content.get("m.relates_to") or {}
    if relates.get("rel_type") == "m.thread" and relates.get("event_id"):
        return str(relates["event_id"])
    return None


def is_edit(source: dict[str, Any]) -> bool:
    content = (source or {}).get("content") or {}
    return (content.get("m.relates_to") or {}).get("rel_type") == "m.replace"


class SeenEvents:
    """Bounded set of handled event ids (sync can redeliver events)."""

    def __init__(self, limit: int = SEEN_EVENTS_LIMIT) -> None:
        self._ids: OrderedDict[str, None] = OrderedDict()
        self._limit = limit

    def add(self, event_id: str) -> bool:
        """Record `event_id`; False when it was already seen."""
        if event_id in self._ids:
            return False
        self._ids[event_id] = None
        if len(self._ids) > self._limit:
            self._ids.popitem(last=False)
        return True


class MatrixGateway:
    """ChatGateway over matrix-nio: threads via m.thread, edits via m.replace."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def send_message(self, channel: str, text: str, thread_key: str | None = None) -> str:
        content: dict[str, Any] = {"msgtype": "m.text", "body": text}
        if thread_key:
            content["m.relates_to"] = {
                "rel_type": "m.thread",
                "event_id": thread_key,
                "is_falling_back": True,
                "m.in_reply_to": {"event_id": thread_key},
            }

        resp = await self._client.room_send(
            room_id=channel,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=True,
        )
        if not isinstance(resp, RoomSendResponse):
            raise RuntimeError(f"Matrix send failed: {resp!r}")
        return resp.event_id

    async def update_message(self, channel: str, message_id: str, text: str) -> None:
        content = {
            "msgtype": "m.text",
            "body": f"* {text}",
            "m.new_content": {"msgtype": "m.text", "body": text},
            "m.relates_to": {"rel_type": "m.replace", "event_id": message_id},
        }
        try:
            resp = await self._client.room_send(
                room_id=channel,
                message_type="m.room.message",
                content=content,
                ignore_unverified_devices=True,
            )
            if not isinstance(resp, RoomSendResponse):
                logger.warning("Matrix edit failed for %s: %r", message_id, resp)
        except Exception:
            logger.warning("Matrix edit failed for %s", message_id, exc_info=True)


async def run_matrix_connector(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Matrix connector:

    init -> digest scheduler -> callbacks -> sync loop

    Messages are handled in their own tasks so a slow capture does not block
    the sync loop. Set `stop_event` (or cancel) to stop.
    """
    settings = state.settings
    if not settings.matrix_homeserver or not settings.matrix_user_id:
        logger.error("Matrix is enabled but not configured (homeserver/user_id).")
        return

    startup_ts = _ms_now()
    allowed_rooms = _room_allowlist(getattr(settings, "matrix_rooms", []) or [])
    logger.info("Matrix allowed_rooms=%s", allowed_rooms if allowed_rooms is not None else "ALL")

    client = await create_matrix_client(settings)
    if client is None:
        logger.error("Matrix client creation failed; connector will stop.")
        return

    gateway = MatrixGateway(client)
    orchestrator = state.orchestrator_for(gateway)
    seen = SeenEvents()
    inflight: set[asyncio.Task[None]] = set()

    scheduler_task = start_digest_scheduler(state, gateway)

    async def reply(room_id: str, text: str, thread_key: str | None = None) -> None:
        try:
            await gateway.send_message(room_id, text, thread_key)
        except Exception:
            logger.exception("Failed to send reply to %s.", room_id)

    async def message_callback(room: MatrixRoom, event: RoomMessageText) -> None:
        # Ignore history, own messages, edits, other rooms and redelivered events.
        ts = getattr(event, "server_timestamp", None)
        if ts is not None and ts <= startup_ts:
            return
        if event.sender == client.user_id:
            return
        if allowed_rooms is not None and room.room_id not in allowed_rooms:
            return
        if is_edit(event.source):
            return
        if not seen.add(event.event_id):
            logger.debug("Duplicate Matrix event %s ignored", event.event_id)
            return

        body = (event.body or "").strip()
        if not body:
            return

        thread_key = thread_root_of(event.source)
        logger.info("Matrix <%s> %s: %r (thread=%s)", room.display_name, event.sender, body, thread_key)

        if thread_key is None:
            try:
                resp = await command_registry.handle(state, body, gateway=gateway, channel=room.room_id)
            except Exception:
                logger.exception("Command handler crashed.")
                resp = "Internal error while handling a command."
            if resp is not None:
                if resp:
                    await reply(room.room_id, resp)
                return

        inbound = InboundMessage(
            channel=room.room_id,
            user=event.sender,
            text=body,
            message_id=event.event_id,
            thread_key=thread_key,
        )
        task = asyncio.create_task(orchestrator.handle(inbound))
        inflight.add(task)
        task.add_done_callback(inflight.discard)

    client.add_event_callback(message_callback, RoomMessageText)

    try:
        logger.info("Matrix initial sync...")
        await client.sync(timeout=30000, full_state=True)
        logger.info("Matrix initial sync done. Joined rooms: %d", len(client.rooms))

        while not stop_event.is_set():
            await client.sync(timeout=30000, full_state=False)

    except asyncio.CancelledError:
        logger.info("Matrix connector cancelled.")
    except Exception:
        logger.exception("Matrix connector crashed.")
    finally:
        if scheduler_task is not None:
            scheduler_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await scheduler_task

        for task in list(inflight):
            task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

        with contextlib.suppress(Exception):
            await client.close()

        logger.info("Matrix connector stopped.")
