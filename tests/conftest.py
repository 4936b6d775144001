import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from itertools import count
from typing import Any
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest
from typing_extensions import override

from jobkeeper import JobInfo, JobKeeper, JobOutcomeHandler, JobScheduler
from jobkeeper._internal.cron_parser import CronFactory, CronParser
from jobkeeper.storage import InMemoryJobStore


@pytest.fixture(scope="session")
def now() -> datetime:
    return datetime.now(tz=ZoneInfo("UTC"))


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def scheduler() -> Mock:
    return Mock(spec=JobScheduler)


@pytest.fixture
def handler(store: InMemoryJobStore, scheduler: Mock) -> JobOutcomeHandler:
    return JobOutcomeHandler(store, scheduler)


class SlowJobStore(InMemoryJobStore):
    """Yields to the event loop on every call, like a real database."""

    def __init__(self, *jobs: JobInfo) -> None:
        super().__init__(*jobs)
        self.writes: int = 0

    @override
    async def find(self, key: str) -> JobInfo | None:
        await asyncio.sleep(0)
        return await super().find(key)

    @override
    async def store(self, job_info: JobInfo) -> None:
        await asyncio.sleep(0)
        self.writes += 1
        await super().store(job_info)


def make_job(key: str = "j1", **fields: Any) -> JobInfo:
    return JobInfo(key=key, **fields)


def cron_next_run(
    init: int = 10,
    step: int = 300,
) -> Callable[..., datetime]:
    cnt = count(init, step=step)

    def next_run(*, now: datetime) -> datetime:
        return now + timedelta(microseconds=next(cnt))

    return next_run


def create_cron_factory() -> CronFactory:
    cron = Mock(spec=CronParser)
    cron.next_run.side_effect = cron_next_run()
    return Mock(return_value=cron)


def create_app(**kwargs: Any) -> JobKeeper:
    kwargs.setdefault("cron_factory", create_cron_factory())
    return JobKeeper(**kwargs)
