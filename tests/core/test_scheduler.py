# tests/core/test_scheduler.py

import asyncio
from unittest.mock import MagicMock

import pytest

from kubecostguard.core.scheduler import Scheduler


async def test_job_runs_immediately():
    scheduler = Scheduler()
    ran = asyncio.Event()

    async def job():
        ran.set()

    scheduler.add_job(job, interval_seconds=3600)

    await asyncio.wait_for(ran.wait(), timeout=1)
    assert len(scheduler.tasks) == 1
    await scheduler.stop()
    assert scheduler.tasks == []


async def test_add_job_from_string_schedules_correctly():
    scheduler = Scheduler()
    mock_job = MagicMock()

    async def async_job():
        mock_job()

    task = scheduler.add_job_from_string(async_job, "1h")

    assert scheduler.tasks == [task]
    await scheduler.stop()
    assert task.cancelled()


def test_invalid_interval_string_is_rejected():
    scheduler = Scheduler()

    async def job():
        pass

    with pytest.raises(ValueError):
        scheduler.add_job_from_string(job, "every tuesday")
    with pytest.raises(ValueError):
        scheduler.add_job(job, interval_seconds=0)
    assert scheduler.tasks == []


async def test_runs_never_overlap():
    scheduler = Scheduler()
    active = 0
    max_active = 0
    runs = 0

    async def slow_job():
        nonlocal active, max_active, runs
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0.03)
        active -= 1
        runs += 1

    # Interval shorter than the job itself
    scheduler.add_job(slow_job, interval_seconds=0.01)
    await asyncio.sleep(0.2)
    await scheduler.stop()

    assert runs >= 2
    assert max_active == 1


async def test_timeout_cancels_run_and_loop_continues():
    scheduler = Scheduler()
    attempts = 0
    cancelled = 0

    async def hanging_job():
        nonlocal attempts, cancelled
        attempts += 1
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled += 1
            raise

    scheduler.add_job(hanging_job, interval_seconds=0.01, timeout_seconds=0.02)
    await asyncio.sleep(0.15)
    await scheduler.stop()

    assert attempts >= 2
    assert cancelled >= 2


async def test_failing_job_does_not_stop_the_loop():
    scheduler = Scheduler()
    calls = 0

    async def flaky_job():
        nonlocal calls
        calls += 1
        raise RuntimeError("snapshot failed")

    task = scheduler.add_job(flaky_job, interval_seconds=0.01)
    await asyncio.sleep(0.08)

    assert not task.done()
    assert calls >= 2
    await scheduler.stop()


async def test_wait_returns_after_stop():
    scheduler = Scheduler()

    async def job():
        pass

    scheduler.add_job(job, interval_seconds=3600)
    waiter = asyncio.create_task(scheduler.wait())
    await asyncio.sleep(0)
    await scheduler.stop()

    await asyncio.wait_for(waiter, timeout=1)
