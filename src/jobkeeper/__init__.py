"""Background job execution and retry engine.

This module exposes the job record, the outcome handler that drives the
job lifecycle, the store and scheduler contracts with their built-in
implementations, and the `JobKeeper` application that ties them together.
"""

from importlib.metadata import version as get_version

from jobkeeper._internal.common.constants import JobStatus, JobType
from jobkeeper._internal.context import ExecutionContext
from jobkeeper._internal.cron_parser import CronParser, Interval
from jobkeeper._internal.handler import JobOutcomeHandler
from jobkeeper._internal.job_info import JobInfo
from jobkeeper._internal.locks import KeyedLock
from jobkeeper._internal.scheduler.abc import JobScheduler
from jobkeeper._internal.storage.abc import JobStore
from jobkeeper._internal.transition import Transition, apply_outcome
from jobkeeper.keeper import JobKeeper

__version__ = get_version("jobkeeper")
__all__ = (
    "CronParser",
    "ExecutionContext",
    "Interval",
    "JobInfo",
    "JobKeeper",
    "JobOutcomeHandler",
    "JobScheduler",
    "JobStatus",
    "JobStore",
    "JobType",
    "KeyedLock",
    "Transition",
    "apply_outcome",
)
