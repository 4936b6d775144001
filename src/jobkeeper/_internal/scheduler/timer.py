from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, final
from zoneinfo import ZoneInfo

from typing_extensions import override

from jobkeeper._internal.exceptions import DuplicateJobError
from jobkeeper._internal.scheduler.abc import JobScheduler

if TYPE_CHECKING:
    from jobkeeper._internal.common.types import FireHook, LoopFactory
    from jobkeeper._internal.job_info import JobInfo

logger = logging.getLogger("jobkeeper.scheduler")


@final
class AsyncioJobScheduler(JobScheduler):
    """Arms one event loop timer per job key.

    When a timer elapses the key is disarmed and the fire hook receives
    the job record it was armed with. Re-arming is up to the caller.
    """

    def __init__(
        self,
        fire: FireHook | None = None,
        *,
        tz: ZoneInfo | None = None,
        loop_factory: LoopFactory = asyncio.get_running_loop,
    ) -> None:
        self.tz: ZoneInfo = tz or ZoneInfo("UTC")
        self.getloop: LoopFactory = loop_factory
        self._fire: FireHook | None = fire
        self._handles: dict[str, asyncio.Handle] = {}
        self._jobs: dict[str, JobInfo] = {}

    def bind(self, fire: FireHook) -> None:
        self._fire = fire

    def now(self) -> datetime:
        return datetime.now(tz=self.tz)

    @property
    def scheduled_keys(self) -> list[str]:
        return list(self._handles)

    @override
    def is_scheduled(self, key: str) -> bool:
        return key in self._handles

    @override
    async def startup(self) -> None:
        pass

    @override
    async def shutdown(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._jobs.clear()

    @override
    async def add(self, job_info: JobInfo) -> None:
        if job_info.key in self._handles:
            raise DuplicateJobError(job_info.key)
        self._arm(job_info)

    @override
    async def reschedule(self, job_info: JobInfo) -> None:
        self._disarm(job_info.key)
        self._arm(job_info)

    @override
    async def remove(self, job_info: JobInfo) -> None:
        if self._disarm(job_info.key):
            logger.debug("Job %s removed from scheduler", job_info.key)

    def _arm(self, job_info: JobInfo) -> None:
        if job_info.is_finished:
            logger.debug(
                "Job %s is %s, not arming",
                job_info.key,
                job_info.status.value,
            )
            return

        loop = self.getloop()
        run_at = job_info.next_run_time
        delay_seconds = (
            run_at.timestamp() - self.now().timestamp()
            if run_at is not None
            else 0.0
        )
        if delay_seconds <= 0:
            handle = loop.call_soon(self._on_timer, job_info.key)
        else:
            when = loop.time() + delay_seconds
            handle = loop.call_at(when, self._on_timer, job_info.key)

        self._handles[job_info.key] = handle
        self._jobs[job_info.key] = job_info

    def _disarm(self, key: str) -> bool:
        _ = self._jobs.pop(key, None)
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _on_timer(self, key: str) -> None:
        job_info = self._jobs.pop(key)
        del self._handles[key]
        if self._fire is None:
            logger.warning("Job %s fired but no fire hook is bound", key)
            return
        self._fire(job_info)
