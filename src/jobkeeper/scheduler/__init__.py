"""Package provides the job schedulers shipped with jobkeeper."""

from jobkeeper._internal.scheduler.timer import AsyncioJobScheduler

__all__ = ("AsyncioJobScheduler",)
