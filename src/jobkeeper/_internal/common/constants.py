from enum import Enum, unique

UNBOUNDED = 0
DEFAULT_MAX_TRY_COUNT = 50


@unique
class JobType(str, Enum):
    ONCE = "once"
    RECURRING = "recurring"


@unique
class JobStatus(str, Enum):
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.STOPPED)
