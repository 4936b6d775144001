"""Custom exceptions for the jobkeeper engine.

Store and scheduler failures raised while an outcome is recorded are
wrapped in `StoreWriteError` and `SchedulerRemovalError`; the original
exception is kept as `__cause__`.
"""

from jobkeeper._internal.exceptions import (
    ApplicationStateError,
    BaseJobKeeperError,
    DuplicateJobError,
    JobNotFoundError,
    PayloadAlreadyRegisteredError,
    PayloadNotRegisteredError,
    SchedulerRemovalError,
    StoreWriteError,
    TransitionError,
)

__all__ = (
    "ApplicationStateError",
    "BaseJobKeeperError",
    "DuplicateJobError",
    "JobNotFoundError",
    "PayloadAlreadyRegisteredError",
    "PayloadNotRegisteredError",
    "SchedulerRemovalError",
    "StoreWriteError",
    "TransitionError",
)
