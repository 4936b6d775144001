"""JobKeeper entrypoint."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, overload
from zoneinfo import ZoneInfo

from typing_extensions import Self

from jobkeeper._internal.common.constants import JobStatus, JobType
from jobkeeper._internal.configuration import KeeperConfiguration
from jobkeeper._internal.context import ExecutionContext
from jobkeeper._internal.cron_parser import Interval
from jobkeeper._internal.exceptions import (
    BaseJobKeeperError,
    DuplicateJobError,
    JobNotFoundError,
    PayloadAlreadyRegisteredError,
    PayloadNotRegisteredError,
    raise_app_already_started_error,
    raise_app_not_started_error,
)
from jobkeeper._internal.handler import JobOutcomeHandler
from jobkeeper._internal.scheduler.timer import AsyncioJobScheduler
from jobkeeper._internal.shared_state import SharedState
from jobkeeper._internal.storage.memory import InMemoryJobStore
from jobkeeper._internal.storage.sqlite import SQLiteJobStore
from jobkeeper.crontab import create_crontab

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import ThreadPoolExecutor
    from types import TracebackType

    from jobkeeper._internal.common.types import LoopFactory, Payload
    from jobkeeper._internal.cron_parser import CronFactory, CronParser
    from jobkeeper._internal.job_info import JobInfo
    from jobkeeper._internal.scheduler.abc import JobScheduler
    from jobkeeper._internal.storage.abc import JobStore
    from jobkeeper._internal.transition import Transition

logger = logging.getLogger("jobkeeper")

ReturnT = TypeVar("ReturnT")
ParamsT = ParamSpec("ParamsT")
PayloadT = TypeVar("PayloadT", bound="Payload")


def cache_result(f: Callable[ParamsT, ReturnT]) -> Callable[ParamsT, ReturnT]:
    """Cache the result of the first function call."""
    result: ReturnT | None = None

    @functools.wraps(f)
    def wrapper(*args: ParamsT.args, **kwargs: ParamsT.kwargs) -> ReturnT:
        nonlocal result
        if result is None:
            result = f(*args, **kwargs)
        return result

    return wrapper


class JobKeeper:
    """Runs stored jobs and keeps their lifecycle up to date.

    JobKeeper arms every active job in the scheduler, runs the registered
    payload when the job fires, and reports each outcome to the
    `JobOutcomeHandler`, which decides whether the job is retried,
    completed or abandoned. Recurring jobs that are still active are
    armed again at their next run time.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        tz: ZoneInfo | None = None,
        store: JobStore | None = None,
        scheduler: JobScheduler | None = None,
        cron_factory: CronFactory = create_crontab,
        loop_factory: LoopFactory = asyncio.get_running_loop,
        threadpool_executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """Initialize a `JobKeeper` instance."""
        getloop = cache_result(loop_factory)
        tz = tz or ZoneInfo("UTC")

        if store is None:
            store = InMemoryJobStore()
        if isinstance(store, SQLiteJobStore):
            store.getloop = getloop
            store.threadpool = threadpool_executor
            store.tz = tz

        if scheduler is None:
            scheduler = AsyncioJobScheduler(tz=tz, loop_factory=getloop)
        if isinstance(scheduler, AsyncioJobScheduler):
            scheduler.bind(self._on_fire)

        self.configs: KeeperConfiguration = KeeperConfiguration(
            tz=tz,
            store=store,
            scheduler=scheduler,
            getloop=getloop,
            cron_factory=cron_factory,
            threadpool=threadpool_executor,
        )
        self.handler: JobOutcomeHandler = JobOutcomeHandler(store, scheduler)
        self._payloads: dict[str, Payload] = {}
        self._shared_state: SharedState = SharedState()

    def now(self) -> datetime:
        return datetime.now(tz=self.configs.tz)

    @overload
    def task(self, func: PayloadT, /) -> PayloadT: ...

    @overload
    def task(
        self,
        *,
        name: str | None = None,
    ) -> Callable[[PayloadT], PayloadT]: ...

    def task(
        self,
        func: PayloadT | None = None,
        /,
        *,
        name: str | None = None,
    ) -> PayloadT | Callable[[PayloadT], PayloadT]:
        """Register a payload that jobs refer to by name.

        Both plain and `async` functions are accepted. Plain functions run
        in the thread pool so they do not block the event loop.
        """
        if self.configs.app_started:
            raise_app_already_started_error("task")

        def wrapper(payload: PayloadT) -> PayloadT:
            payload_name = name or payload.__name__
            if payload_name in self._payloads:
                raise PayloadAlreadyRegisteredError(payload_name)
            self._payloads[payload_name] = payload
            return payload

        if func is None:
            return wrapper
        return wrapper(func)

    async def find_job(self, key: str, /) -> JobInfo | None:
        """Return the stored record of a job, finished or not."""
        return await self.configs.store.find(key)

    async def add_job(self, job_info: JobInfo) -> JobInfo:
        """Store a new job and arm it.

        The next run time is computed from the job's cron or interval
        unless it is already set. A one-shot job without a trigger runs
        as soon as possible.

        Returns:
            The stored record.

        Raises:
            ApplicationStateError: The application is not started.
            PayloadNotRegisteredError: No payload has the job's name.
            DuplicateJobError: A job with the same key is armed or running.
            ValueError: The cron expression is invalid, or a recurring job
                has neither cron nor interval.

        """
        if not self.configs.app_started:
            raise_app_not_started_error("add_job")
        if job_info.name not in self._payloads:
            raise PayloadNotRegisteredError(job_info.name)

        trigger = self._trigger(job_info)
        async with self.handler.locks.acquire(job_info.key):
            if self.configs.scheduler.is_scheduled(
                job_info.key
            ) or self._shared_state.is_running(job_info.key):
                raise DuplicateJobError(job_info.key)

            next_run_time = job_info.next_run_time
            if next_run_time is None:
                next_run_time = self._next_run_time(
                    job_info,
                    trigger,
                    self.now(),
                )

            armed = replace(
                job_info,
                status=JobStatus.RUNNING,
                next_run_time=next_run_time,
            )
            await self.configs.store.store(armed)
            await self.configs.scheduler.add(armed)

        logger.debug(
            "Job %s (%s) added, next run at %s",
            armed.key,
            armed.name,
            next_run_time,
        )
        return armed

    async def remove_job(self, key: str, /) -> JobInfo:
        """Disarm a job and mark it stopped unless it already finished.

        A payload that is running keeps running, its outcome is recorded
        but the job is not armed again.

        Raises:
            JobNotFoundError: No job with this key is stored.

        """
        async with self.handler.locks.acquire(key):
            job_info = await self.configs.store.find(key)
            if job_info is None:
                raise JobNotFoundError(key)

            if not job_info.is_finished:
                job_info = replace(job_info, status=JobStatus.STOPPED)
                await self.configs.store.store(job_info)
            await self.configs.scheduler.remove(job_info)
        return job_info

    async def on_executed(  # noqa: PLR0913
        self,
        key: str,
        *,
        next_run_time: datetime | None = None,
        last_run_time: datetime | None = None,
        result: str | None = None,
        exception: BaseException | None = None,
    ) -> Transition:
        """Report an outcome produced outside of this application."""
        return await self.handler.on_executed(
            key,
            next_run_time=next_run_time,
            last_run_time=last_run_time,
            result=result,
            exception=exception,
        )

    def _trigger(self, job_info: JobInfo) -> CronParser | None:
        if job_info.cron is not None:
            return self.configs.cron_factory(job_info.cron)
        if job_info.interval is not None:
            return Interval(job_info.interval)
        return None

    def _next_run_time(
        self,
        job_info: JobInfo,
        trigger: CronParser | None,
        now: datetime,
    ) -> datetime:
        if trigger is not None:
            return trigger.next_run(now=now)
        if job_info.job_type is JobType.ONCE:
            return now
        msg = (
            f"Recurring job {job_info.key!r} needs either "
            "a cron expression or an interval."
        )
        raise ValueError(msg)

    def _on_fire(self, job_info: JobInfo) -> None:
        task = asyncio.create_task(self._execute(job_info), name=job_info.key)
        self._shared_state.track_task(task)

    async def _run_payload(self, job_info: JobInfo) -> Any:  # noqa: ANN401
        payload = self._payloads.get(job_info.name)
        if payload is None:
            raise PayloadNotRegisteredError(job_info.name)
        if inspect.iscoroutinefunction(payload):
            return await payload(**job_info.args)

        loop = self.configs.getloop()
        call = functools.partial(payload, **job_info.args)
        return await loop.run_in_executor(self.configs.threadpool, call)

    async def _execute(self, job_info: JobInfo) -> None:
        key = job_info.key
        fired_at = self.now()
        result: str | None = None
        exception: Exception | None = None
        try:
            value = await self._run_payload(job_info)
        except Exception as exc:
            logger.exception("Job %s failed with unexpected error", key)
            exception = exc
        else:
            result = None if value is None else str(value)

        next_run_time: datetime | None = None
        try:
            trigger = self._trigger(job_info)
            if job_info.job_type is JobType.RECURRING and trigger is not None:
                next_run_time = trigger.next_run(now=fired_at)
        except Exception as exc:
            logger.exception("Cannot compute the next run of job %s", key)
            if exception is None:
                exception = exc

        ctx = ExecutionContext(
            key=key,
            next_run_time=next_run_time,
            last_run_time=fired_at,
            result=result,
            exception=exception,
        )
        async with self.handler.locks.acquire(key):
            try:
                transition = await self.handler.handle_locked(ctx)
            except JobNotFoundError:
                logger.info("Job %s was deleted while running, skipping", key)
                return
            except BaseJobKeeperError:
                logger.exception("Failed to record the outcome of job %s", key)
                return

            updated = transition.job_info
            if (
                transition.remove
                or updated.is_finished
                or updated.next_run_time is None
                or not self.configs.app_started
            ):
                return
            await self.configs.scheduler.reschedule(updated)

    async def __aenter__(self) -> Self:
        """Enter the JobKeeper context manager."""
        await self.startup()
        return self

    async def startup(self) -> None:
        """Open the store and arm every job that is not finished.

        Jobs whose payload is not registered or whose trigger is invalid
        are left untouched in the store and logged.
        """
        self.configs.app_started = True
        await self.configs.store.startup()
        await self.configs.scheduler.startup()
        await self._restore_jobs()

    async def _restore_jobs(self) -> None:
        restored: list[str] = []
        for job_info in await self.configs.store.get_jobs():
            if job_info.is_finished:
                continue
            if job_info.name not in self._payloads:
                logger.warning(
                    "Cannot restore <key %r><name %r>: payload is not "
                    "registered. Leaving it in storage.",
                    job_info.key,
                    job_info.name,
                )
                continue
            try:
                trigger = self._trigger(job_info)
                next_run_time = job_info.next_run_time or self._next_run_time(
                    job_info,
                    trigger,
                    self.now(),
                )
            except ValueError as exc:
                logger.warning(
                    "Cannot restore <key %r><name %r>: %s. "
                    "Leaving it in storage.",
                    job_info.key,
                    job_info.name,
                    exc,
                )
                continue
            await self.configs.scheduler.reschedule(
                replace(job_info, next_run_time=next_run_time),
            )
            restored.append(job_info.key)

        if restored:
            logger.info("Restored %d jobs: %s", len(restored), restored)

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_val: BaseException | None = None,
        exc_tb: TracebackType | None = None,
    ) -> None:
        """Exit the JobKeeper context manager."""
        await self.shutdown()

    async def shutdown(self) -> None:
        """Stop arming jobs, cancel running payloads, close the store."""
        self.configs.app_started = False

        if tasks := self._shared_state.pending_tasks:
            for task in tuple(tasks):
                _ = task.cancel()
            _ = await asyncio.gather(*tasks, return_exceptions=True)

        await self.configs.scheduler.shutdown()
        await self.configs.store.shutdown()

    async def wait_all(self, timeout: float | None = None) -> None:
        """Wait for the payloads that are running right now to finish."""
        if tasks := tuple(self._shared_state.pending_tasks):
            _ = await asyncio.wait_for(
                asyncio.gather(*tasks, return_exceptions=True),
                timeout=timeout,
            )
