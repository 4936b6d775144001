import re
from abc import ABCMeta, abstractmethod
from collections.abc import Sequence
from typing import Protocol

from jobkeeper._internal.job_info import JobInfo


def validate_table_name(table_name: str) -> None:
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", table_name):
        msg = (
            f"Invalid table name: {table_name!r}. "
            f"Must contain only letters, digits, and underscores."
        )
        raise ValueError(msg)


class JobStore(Protocol, metaclass=ABCMeta):
    """Durable repository of job records keyed by `JobInfo.key`.

    A store only has to make a write visible to the next read of the same
    key. Serializing writers per key is the caller's job.
    """

    @abstractmethod
    async def startup(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def shutdown(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def find(self, key: str) -> JobInfo | None:
        raise NotImplementedError

    @abstractmethod
    async def store(self, job_info: JobInfo) -> None:
        """Insert or overwrite the record with the same key."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_jobs(self) -> Sequence[JobInfo]:
        raise NotImplementedError
