# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from second_brain.tasks.task_scheduler import DigestJob, next_fire_time, run_digest_scheduler

TZ = ZoneInfo("Asia/Bangkok")


class StopScheduler(Exception):
    pass


class FakeTime:
    """Clock + sleeper pair: sleeping advances the clock instead of waiting."""

    def __init__(self, start: datetime, max_sleeps: int) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.max_sleeps = max_sleeps

    def clock(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        if len(self.sleeps) >= self.max_sleeps:
            raise StopScheduler()
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


def test_next_fire_time_is_strictly_after_now() -> None:
    now = datetime(2025, 1, 10, 7, 59, tzinfo=TZ)

    assert next_fire_time(now, time(8, 0)) == datetime(2025, 1, 10, 8, 0, tzinfo=TZ)
    assert next_fire_time(now.replace(hour=8, minute=0), time(8, 0)) == datetime(2025, 1, 11, 8, 0, tzinfo=TZ)
    assert next_fire_time(now.replace(hour=22), time(21, 0)) == datetime(2025, 1, 11, 21, 0, tzinfo=TZ)


@pytest.mark.asyncio
async def test_jobs_fire_in_time_order_once_per_day() -> None:
    fired: list[tuple[str, datetime]] = []
    fake = FakeTime(datetime(2025, 1, 10, 6, 0, tzinfo=TZ), max_sleeps=4)

    def job(name: str, at: time) -> DigestJob:
        async def run() -> None:
            fired.append((name, fake.now))

        return DigestJob(name=name, at=at, run=run)

    with pytest.raises(StopScheduler):
        await run_digest_scheduler(
            [job("nightly", time(21, 0)), job("morning", time(8, 0))],
            timezone="Asia/Bangkok",
            clock=fake.clock,
            sleep=fake.sleep,
        )

    assert [(name, ts.day, ts.hour) for name, ts in fired] == [
        ("morning", 10, 8),
        ("nightly", 10, 21),
        ("morning", 11, 8),
        ("nightly", 11, 21),
    ]
    assert fake.sleeps[0] == 2 * 3600


@pytest.mark.asyncio
async def test_failing_job_does_not_stop_the_loop() -> None:
    calls = 0
    fake = FakeTime(datetime(2025, 1, 10, 7, 0, tzinfo=TZ), max_sleeps=3)

    async def explode() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("briefing failed")

    with pytest.raises(StopScheduler):
        await run_digest_scheduler(
            [DigestJob(name="morning", at=time(8, 0), run=explode)],
            timezone="Asia/Bangkok",
            clock=fake.clock,
            sleep=fake.sleep,
        )

    assert calls == 3


@pytest.mark.asyncio
async def test_scheduler_stops_on_cancel() -> None:
    async def noop() -> None:
        return None

    runner = asyncio.create_task(
        run_digest_scheduler([DigestJob(name="morning", at=time(8, 0), run=noop)], timezone="UTC")
    )

    await asyncio.sleep(0.01)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner


@pytest.mark.asyncio
async def test_no_jobs_returns_immediately() -> None:
    await run_digest_scheduler([], timezone="UTC")
