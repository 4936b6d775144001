import asyncio
import logging
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from jobkeeper import (
    ExecutionContext,
    JobOutcomeHandler,
    JobStatus,
    JobType,
    KeyedLock,
)
from jobkeeper.exceptions import (
    JobNotFoundError,
    SchedulerRemovalError,
    StoreWriteError,
)
from jobkeeper.scheduler import AsyncioJobScheduler
from jobkeeper.storage import InMemoryJobStore
from tests.conftest import SlowJobStore, make_job


async def test_on_executed_success(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
    scheduler: Mock,
    now: datetime,
) -> None:
    await store.store(make_job(status=JobStatus.RUNNING))

    transition = await handler.on_executed(
        "j1",
        next_run_time=now + timedelta(seconds=30),
        last_run_time=now,
        result="42",
    )

    stored = await store.find("j1")
    assert stored == transition.job_info
    assert stored is not None
    assert stored.trigger_count == 1
    assert stored.result == "42"
    assert stored.last_run_time == now
    assert transition.remove is False
    scheduler.remove.assert_not_awaited()


@pytest.mark.parametrize("exception", [None, ValueError("bad input")])
async def test_once_job_is_completed_and_removed(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
    scheduler: Mock,
    exception: Exception | None,
) -> None:
    await store.store(make_job(job_type=JobType.ONCE))

    transition = await handler.on_executed("j1", exception=exception)

    assert transition.remove is True
    assert transition.job_info.status is JobStatus.COMPLETED
    scheduler.remove.assert_awaited_once_with(transition.job_info)


async def test_recurring_abandonment(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
    scheduler: Mock,
) -> None:
    await store.store(make_job(max_try_count=3))
    error = ConnectionError("unreachable")

    for _ in range(3):
        transition = await handler.on_executed("j1", exception=error)
        assert transition.remove is False
    stored = await store.find("j1")
    assert stored is not None
    assert stored.try_count == 3
    assert stored.status is JobStatus.RUNNING
    scheduler.remove.assert_not_awaited()

    transition = await handler.on_executed("j1", exception=error)
    assert transition.remove is True
    assert transition.job_info.status is JobStatus.STOPPED
    assert transition.job_info.is_abandoned is True
    assert transition.job_info.result == "unreachable"
    assert await store.find("j1") == transition.job_info
    scheduler.remove.assert_awaited_once_with(transition.job_info)


async def test_max_count(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
    scheduler: Mock,
) -> None:
    await store.store(make_job(max_count=5))

    for _ in range(5):
        transition = await handler.on_executed("j1", result="ok")
        assert transition.remove is False
        assert transition.job_info.status is not JobStatus.COMPLETED

    transition = await handler.on_executed("j1", exception=OSError())
    assert transition.remove is True
    assert transition.job_info.status is JobStatus.COMPLETED
    scheduler.remove.assert_awaited_once()


async def test_unknown_key(scheduler: Mock) -> None:
    store = SlowJobStore()
    handler = JobOutcomeHandler(store, scheduler)

    with pytest.raises(JobNotFoundError, match="'missing'") as exc:
        _ = await handler.on_executed("missing", result="ok")

    assert exc.value.key == "missing"
    assert store.writes == 0
    scheduler.remove.assert_not_awaited()


async def test_store_write_error(scheduler: Mock) -> None:
    store = Mock(wraps=InMemoryJobStore(make_job(job_type=JobType.ONCE)))
    store.store.side_effect = OSError("database is locked")
    handler = JobOutcomeHandler(store, scheduler)

    with pytest.raises(StoreWriteError, match="database is locked") as exc:
        _ = await handler.on_executed("j1", result="ok")

    assert isinstance(exc.value.__cause__, OSError)
    assert exc.value.key == "j1"
    scheduler.remove.assert_not_awaited()


async def test_scheduler_removal_error_keeps_store_write(
    store: InMemoryJobStore,
    scheduler: Mock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    await store.store(make_job(job_type=JobType.ONCE))
    scheduler.remove.side_effect = RuntimeError("timer wheel gone")
    handler = JobOutcomeHandler(store, scheduler)

    with (
        caplog.at_level(logging.WARNING, logger="jobkeeper.handler"),
        pytest.raises(SchedulerRemovalError, match="timer wheel gone"),
    ):
        _ = await handler.on_executed("j1", result="ok")

    stored = await store.find("j1")
    assert stored is not None
    assert stored.status is JobStatus.COMPLETED
    assert "could not be removed" in caplog.text


async def test_removal_twice_is_not_an_error(now: datetime) -> None:
    scheduler = AsyncioJobScheduler(Mock())
    job = make_job(next_run_time=now + timedelta(hours=1))
    await scheduler.add(job)

    await scheduler.remove(job)
    await scheduler.remove(job)

    assert scheduler.is_scheduled(job.key) is False


async def test_concurrent_failures_are_serialized(scheduler: Mock) -> None:
    calls = 8
    store = SlowJobStore(make_job(max_try_count=calls - 1))
    handler = JobOutcomeHandler(store, scheduler)

    transitions = await asyncio.gather(
        *(
            handler.on_executed("j1", exception=RuntimeError(str(i)))
            for i in range(calls)
        )
    )

    stored = await store.find("j1")
    assert stored is not None
    assert stored.try_count == calls
    assert stored.trigger_count == calls
    assert stored.is_abandoned is True
    assert store.writes == calls
    assert [t.job_info.try_count for t in transitions] == list(
        range(1, calls + 1)
    )
    assert sum(t.abandoned for t in transitions) == 1
    scheduler.remove.assert_awaited_once()


async def test_distinct_keys_do_not_wait_for_each_other(
    scheduler: Mock,
) -> None:
    locks = KeyedLock()
    store = SlowJobStore(make_job("a"), make_job("b"))
    handler = JobOutcomeHandler(store, scheduler, locks=locks)

    async with locks.acquire("a"):
        transition = await asyncio.wait_for(
            handler.on_executed("b", result="ok"),
            timeout=1,
        )
        assert transition.job_info.trigger_count == 1

    stored = await store.find("a")
    assert stored is not None
    assert stored.trigger_count == 0


async def test_handle_context(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
) -> None:
    await store.store(make_job())
    ctx = ExecutionContext(key="j1", exception=KeyError("user_id"))

    transition = await handler.handle(ctx)

    assert ctx.failed is True
    assert transition.job_info.result == ctx.outcome_text()
    assert transition.job_info.try_count == 1


async def test_outcome_waits_for_other_writers(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
) -> None:
    await store.store(make_job())

    async with handler.locks.acquire("j1"):
        pending = asyncio.create_task(handler.on_executed("j1", result="ok"))
        await asyncio.sleep(0)
        await store.store(make_job(status=JobStatus.STOPPED))
        assert pending.done() is False

    transition = await pending

    assert transition.job_info.status is JobStatus.STOPPED
    assert transition.job_info.trigger_count == 1


async def test_handle_locked_does_not_take_the_lock(
    handler: JobOutcomeHandler,
    store: InMemoryJobStore,
) -> None:
    await store.store(make_job())

    async with handler.locks.acquire("j1"):
        transition = await asyncio.wait_for(
            handler.handle_locked(ExecutionContext(key="j1", result="ok")),
            timeout=1,
        )

    assert transition.job_info.result == "ok"
