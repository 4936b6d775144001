from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from jobkeeper._internal.common.constants import (
    DEFAULT_MAX_TRY_COUNT,
    UNBOUNDED,
    JobStatus,
    JobType,
)

if TYPE_CHECKING:
    from datetime import datetime

_COUNTERS = ("trigger_count", "try_count", "max_try_count", "max_count")
_TIMES = ("next_run_time", "last_run_time")


@dataclass(slots=True, kw_only=True, frozen=True)
class JobInfo:
    """Persisted record of a scheduled job.

    Instances are immutable. Every state change produces a new record
    (see `dataclasses.replace`), so the key never changes once created.

    Attributes:
        key: Stable unique identifier, the store's primary key.
        name: Name of the registered payload to execute.
        job_type: One-shot or recurring.
        status: Lifecycle state.
        args: JSON-compatible keyword arguments passed to the payload.
        cron: Cron expression used to compute the next run time.
        interval: Interval in seconds used when no cron is given.
        trigger_count: Number of completed execution attempts.
        try_count: Number of failed execution attempts.
        max_try_count: Failures tolerated before the job is abandoned.
        max_count: Allowed number of runs, `0` means unbounded.
        is_abandoned: The job was stopped after running out of tries.
        next_run_time: Next run time reported by the trigger.
        last_run_time: Last run time reported by the trigger.
        result: Text of the last outcome.

    """

    key: str
    name: str = ""
    job_type: JobType = JobType.RECURRING
    status: JobStatus = JobStatus.READY
    args: dict[str, Any] = field(default_factory=dict)
    cron: str | None = None
    interval: float | None = None
    trigger_count: int = 0
    try_count: int = 0
    max_try_count: int = DEFAULT_MAX_TRY_COUNT
    max_count: int = UNBOUNDED
    is_abandoned: bool = False
    next_run_time: datetime | None = None
    last_run_time: datetime | None = None
    result: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            msg = "JobInfo.key must be a non-empty string."
            raise ValueError(msg)

        for name in _COUNTERS:
            value = getattr(self, name)
            if value < 0:
                msg = f"JobInfo.{name} must be >= 0, got {value}."
                raise ValueError(msg)

        if self.interval is not None and self.interval <= 0:
            msg = f"JobInfo.interval must be > 0, got {self.interval}."
            raise ValueError(msg)

        for name in _TIMES:
            value = getattr(self, name)
            if value is not None and value.utcoffset() is None:
                msg = f"JobInfo.{name} must be timezone-aware, got {value}."
                raise ValueError(msg)

        if self.is_abandoned and self.status is not JobStatus.STOPPED:
            msg = (
                f"Job {self.key!r} is abandoned but has status "
                f"{self.status.value!r}; abandoned jobs must be stopped."
            )
            raise ValueError(msg)

        if (
            self.try_count > self.max_try_count
            and self.status is not JobStatus.STOPPED
        ):
            msg = (
                f"Job {self.key!r} exceeded its tries "
                f"({self.try_count}/{self.max_try_count}) "
                f"but has status {self.status.value!r}."
            )
            raise ValueError(msg)

    @classmethod
    def create(
        cls,
        *,
        key: str | None = None,
        **fields: Any,  # noqa: ANN401
    ) -> JobInfo:
        """Build a record, generating a random key when none is given."""
        return cls(key=key or uuid4().hex, **fields)

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def is_bounded(self) -> bool:
        return self.max_count != UNBOUNDED
