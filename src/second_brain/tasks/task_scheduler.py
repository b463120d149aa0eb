# src/second_brain/tasks/task_scheduler.py

from __future__ import annotations

"""
Digest scheduler.

A small loop that fires named jobs at fixed local times (e.g. 08:00 and
21:00) in a configured timezone:
- compute the next fire time of every job,
- sleep until the earliest one,
- run it, logging (and surviving) failures.

To stop the scheduler, cancel the coroutine/task.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from ..core.dates import Clock

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[object]]


@dataclass(slots=True, frozen=True)
class DigestJob:
    name: str
    at: time
    run: Callable[[], Awaitable[object]]


def next_fire_time(now: datetime, at: time) -> datetime:
    """First datetime strictly after `now` whose wall-clock time is `at` (same tz as `now`)."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=at.second, microsecond=0)
    if candidate <= now:
        candidate = (candidate + timedelta(days=1)).replace(
            hour=at.hour, minute=at.minute, second=at.second, microsecond=0
        )
    return candidate


async def run_digest_scheduler(
        jobs: Sequence[DigestJob],
        *,
        timezone: str = "UTC",
        clock: Clock | None = None,
        sleep: Sleeper = asyncio.sleep,
) -> None:
    """
    Run `jobs` forever at their local times in `timezone`.

    A job that raises is logged and does not stop the loop.
    """
    if not jobs:
        logger.info("Digest scheduler: no jobs configured")
        return

    tz = ZoneInfo(timezone)
    now_fn: Clock = clock or (lambda: datetime.now(tz))
    last_fired: dict[str, datetime] = {}

    logger.info(
        "Digest scheduler configured for timezone=%s jobs=%s",
        timezone,
        ", ".join(f"{j.name}@{j.at.strftime('%H:%M')}" for j in jobs),
    )

    while True:
        now = now_fn().astimezone(tz)

        upcoming: list[tuple[datetime, DigestJob]] = []
        for job in jobs:
            after = now
            prev = last_fired.get(job.name)
            if prev is not None and prev >= after:
                after = prev
            upcoming.append((next_fire_time(after, job.at), job))

        fire_at, job = min(upcoming, key=lambda item: item[0])
        delay = max(0.0, (fire_at - now).total_seconds())
        logger.debug("Digest scheduler: next job=%s at %s (in %.0fs)", job.name, fire_at.isoformat(), delay)

        await sleep(delay)

        last_fired[job.name] = fire_at
        logger.info("Running digest job %s", job.name)
        try:
            await job.run()
        except Exception:
            logger.exception("Digest job %s failed", job.name)
