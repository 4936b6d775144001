from abc import ABCMeta, abstractmethod
from typing import Protocol

from jobkeeper._internal.job_info import JobInfo


class JobScheduler(Protocol, metaclass=ABCMeta):
    """Owner of the set of armed jobs and their timers."""

    @abstractmethod
    async def startup(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def shutdown(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add(self, job_info: JobInfo) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove(self, job_info: JobInfo) -> None:
        """Disarm the job. Removing a job that is not armed is a no-op."""
        raise NotImplementedError

    @abstractmethod
    async def reschedule(self, job_info: JobInfo) -> None:
        raise NotImplementedError

    @abstractmethod
    def is_scheduled(self, key: str) -> bool:
        raise NotImplementedError
