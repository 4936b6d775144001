import asyncio
import logging
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from jobkeeper import JobInfo, JobStatus
from jobkeeper.exceptions import DuplicateJobError
from jobkeeper.scheduler import AsyncioJobScheduler


@pytest.fixture
def fire() -> Mock:
    return Mock()


@pytest.fixture
def scheduler(fire: Mock) -> AsyncioJobScheduler:
    return AsyncioJobScheduler(fire)


async def test_due_job_fires_soon(
    scheduler: AsyncioJobScheduler,
    fire: Mock,
) -> None:
    job = JobInfo(key="j1")

    await scheduler.add(job)
    assert scheduler.is_scheduled("j1")
    assert scheduler.scheduled_keys == ["j1"]

    await asyncio.sleep(0)

    fire.assert_called_once_with(job)
    assert scheduler.is_scheduled("j1") is False


async def test_future_job_fires_at_next_run_time(
    scheduler: AsyncioJobScheduler,
    fire: Mock,
) -> None:
    job = JobInfo(
        key="j1",
        next_run_time=scheduler.now() + timedelta(milliseconds=20),
    )

    await scheduler.add(job)
    await asyncio.sleep(0)
    fire.assert_not_called()

    await asyncio.sleep(0.1)
    fire.assert_called_once_with(job)


async def test_duplicate_add(
    scheduler: AsyncioJobScheduler,
    now: datetime,
) -> None:
    job = JobInfo(key="j1", next_run_time=now + timedelta(hours=1))
    await scheduler.add(job)

    with pytest.raises(DuplicateJobError, match="'j1' is already scheduled"):
        await scheduler.add(job)


async def test_remove_cancels_timer(
    scheduler: AsyncioJobScheduler,
    fire: Mock,
) -> None:
    job = JobInfo(key="j1")
    await scheduler.add(job)

    await scheduler.remove(job)
    await scheduler.remove(job)
    await asyncio.sleep(0.01)

    fire.assert_not_called()
    assert scheduler.is_scheduled("j1") is False


async def test_reschedule_replaces_timer(
    scheduler: AsyncioJobScheduler,
    fire: Mock,
    now: datetime,
) -> None:
    job = JobInfo(key="j1", next_run_time=now + timedelta(hours=1))
    await scheduler.add(job)

    moved = JobInfo(key="j1", result="moved")
    await scheduler.reschedule(moved)
    await asyncio.sleep(0)

    fire.assert_called_once_with(moved)


@pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.STOPPED])
async def test_finished_jobs_are_not_armed(
    scheduler: AsyncioJobScheduler,
    status: JobStatus,
) -> None:
    await scheduler.add(JobInfo(key="j1", status=status))
    assert scheduler.is_scheduled("j1") is False


async def test_shutdown_cancels_everything(
    scheduler: AsyncioJobScheduler,
    fire: Mock,
) -> None:
    await scheduler.startup()
    await scheduler.add(JobInfo(key="a"))
    await scheduler.add(JobInfo(key="b"))

    await scheduler.shutdown()
    await asyncio.sleep(0.01)

    fire.assert_not_called()
    assert scheduler.scheduled_keys == []


async def test_fire_without_hook(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = AsyncioJobScheduler()
    await scheduler.add(JobInfo(key="j1"))

    with caplog.at_level(logging.WARNING, logger="jobkeeper.scheduler"):
        await asyncio.sleep(0)

    assert "no fire hook is bound" in caplog.text
    assert scheduler.is_scheduled("j1") is False
