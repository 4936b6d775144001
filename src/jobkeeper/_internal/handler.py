from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from jobkeeper._internal.common.constants import JobStatus
from jobkeeper._internal.context import ExecutionContext
from jobkeeper._internal.exceptions import (
    JobNotFoundError,
    SchedulerRemovalError,
    StoreWriteError,
)
from jobkeeper._internal.locks import KeyedLock
from jobkeeper._internal.transition import Transition, apply_outcome

if TYPE_CHECKING:
    from datetime import datetime

    from jobkeeper._internal.scheduler.abc import JobScheduler
    from jobkeeper._internal.storage.abc import JobStore

logger = logging.getLogger("jobkeeper.handler")


class JobOutcomeHandler:
    """Applies execution outcomes to stored jobs.

    Each outcome is handled under a lock held for its job key, from the
    read of the record to the end of the scheduler removal, so outcomes
    of the same job never interleave.
    """

    __slots__: tuple[str, ...] = ("_locks", "_scheduler", "_store")

    def __init__(
        self,
        store: JobStore,
        scheduler: JobScheduler,
        *,
        locks: KeyedLock | None = None,
    ) -> None:
        self._store: JobStore = store
        self._scheduler: JobScheduler = scheduler
        self._locks: KeyedLock = KeyedLock() if locks is None else locks

    async def on_executed(  # noqa: PLR0913
        self,
        key: str,
        *,
        next_run_time: datetime | None = None,
        last_run_time: datetime | None = None,
        result: str | None = None,
        exception: BaseException | None = None,
    ) -> Transition:
        """Record the outcome of one execution attempt.

        Must be called exactly once per finished attempt.

        Returns:
            The stored record and whether the job was removed from the
            scheduler.

        Raises:
            JobNotFoundError: The job is no longer in the store.
            StoreWriteError: The updated record could not be stored.
            SchedulerRemovalError: The record was stored but the job could
                not be removed from the scheduler.

        """
        ctx = ExecutionContext(
            key=key,
            next_run_time=next_run_time,
            last_run_time=last_run_time,
            result=result,
            exception=exception,
        )
        return await self.handle(ctx)

    @property
    def locks(self) -> KeyedLock:
        """Per-key lock every writer of a job record must hold."""
        return self._locks

    async def handle(self, ctx: ExecutionContext) -> Transition:
        async with self._locks.acquire(ctx.key):
            return await self.handle_locked(ctx)

    async def handle_locked(self, ctx: ExecutionContext) -> Transition:
        """Apply an outcome while the caller holds the lock of its key."""
        job_info = await self._store.find(ctx.key)
        if job_info is None:
            raise JobNotFoundError(ctx.key)

        transition = apply_outcome(job_info, ctx)
        updated = transition.job_info
        try:
            await self._store.store(updated)
        except Exception as exc:
            raise StoreWriteError(ctx.key, reason=str(exc)) from exc

        self._log_transition(transition)

        if transition.remove:
            try:
                await self._scheduler.remove(updated)
            except Exception as exc:
                logger.warning(
                    "Job %s is %s but could not be removed "
                    "from the scheduler: %s",
                    ctx.key,
                    updated.status.value,
                    exc,
                )
                raise SchedulerRemovalError(
                    ctx.key,
                    reason=str(exc),
                ) from exc

        return transition

    def _log_transition(self, transition: Transition) -> None:
        job_info = transition.job_info
        if transition.abandoned:
            logger.warning(
                "Job %s abandoned after %s failed tries (max %s): %s",
                job_info.key,
                job_info.try_count,
                job_info.max_try_count,
                job_info.result,
            )
        elif job_info.status is JobStatus.COMPLETED:
            logger.info(
                "Job %s completed after %s runs",
                job_info.key,
                job_info.trigger_count,
            )
        else:
            logger.debug(
                "Job %s run %s recorded, tries %s/%s",
                job_info.key,
                job_info.trigger_count,
                job_info.try_count,
                job_info.max_try_count,
            )
