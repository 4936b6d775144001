from collections.abc import Sequence

from typing_extensions import override

from jobkeeper._internal.job_info import JobInfo
from jobkeeper._internal.storage.abc import JobStore


class InMemoryJobStore(JobStore):
    __slots__: tuple[str, ...] = ("_jobs",)

    def __init__(self, *jobs: JobInfo) -> None:
        self._jobs: dict[str, JobInfo] = {job.key: job for job in jobs}

    @override
    async def startup(self) -> None:
        pass

    @override
    async def shutdown(self) -> None:
        pass

    @override
    async def find(self, key: str) -> JobInfo | None:
        return self._jobs.get(key)

    @override
    async def store(self, job_info: JobInfo) -> None:
        self._jobs[job_info.key] = job_info

    @override
    async def delete(self, key: str) -> None:
        _ = self._jobs.pop(key, None)

    @override
    async def get_jobs(self) -> Sequence[JobInfo]:
        return list(self._jobs.values())
