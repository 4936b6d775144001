"""Job lifecycle transitions driven by execution outcomes."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, NamedTuple

from jobkeeper._internal.common.constants import JobStatus, JobType
from jobkeeper._internal.exceptions import TransitionError

if TYPE_CHECKING:
    from jobkeeper._internal.context import ExecutionContext
    from jobkeeper._internal.job_info import JobInfo


class Transition(NamedTuple):
    job_info: JobInfo
    remove: bool

    @property
    def abandoned(self) -> bool:
        return self.job_info.is_abandoned


def apply_outcome(job_info: JobInfo, ctx: ExecutionContext) -> Transition:
    """Compute the next state of a job from one execution outcome.

    Rules are applied in order, a later rule overrides an earlier one:

    1. Bookkeeping: count the attempt, copy run times and the result.
    2. One-shot jobs are completed after their single attempt.
    3. A failure counts a try and re-arms a job that is not finished.
       Once the tries exceed `max_try_count` the job is stopped and
       abandoned.
    4. A bounded job that ran more than `max_count` times is completed.
       An abandoned job stays stopped.

    Args:
        job_info: Latest persisted snapshot of the job.
        ctx: Outcome of the execution attempt.

    Returns:
        The new record and whether the job must leave the scheduler.

    Raises:
        TransitionError: If the context belongs to another job.

    """
    if job_info.key != ctx.key:
        raise TransitionError(job_info.key, ctx.key)

    status = job_info.status
    trigger_count = job_info.trigger_count + 1
    try_count = job_info.try_count
    is_abandoned = job_info.is_abandoned
    result = ctx.outcome_text()
    remove = False

    if job_info.job_type is JobType.ONCE:
        status = JobStatus.COMPLETED
        remove = True

    if ctx.exception is not None:
        try_count += 1
        if not status.is_terminal:
            status = JobStatus.RUNNING

        if try_count > job_info.max_try_count:
            status = JobStatus.STOPPED
            is_abandoned = True
            remove = True

    if job_info.is_bounded and trigger_count > job_info.max_count:
        remove = True
        if not is_abandoned:
            status = JobStatus.COMPLETED

    updated = replace(
        job_info,
        status=status,
        trigger_count=trigger_count,
        try_count=try_count,
        is_abandoned=is_abandoned,
        next_run_time=ctx.next_run_time,
        last_run_time=ctx.last_run_time,
        result=result,
    )
    return Transition(updated, remove)
