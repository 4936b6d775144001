from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar
from zoneinfo import ZoneInfo

from typing_extensions import override

from jobkeeper._internal.common.constants import JobStatus, JobType
from jobkeeper._internal.job_info import JobInfo
from jobkeeper._internal.storage.abc import JobStore, validate_table_name

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import ThreadPoolExecutor

    from jobkeeper._internal.common.types import LoopFactory

logger = logging.getLogger("jobkeeper.storage")

CREATE_JOBS_TABLE_QUERY = """
CREATE TABLE IF NOT EXISTS {} (
    job_key TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    job_type TEXT NOT NULL,
    status TEXT NOT NULL,
    args TEXT NOT NULL,
    cron TEXT,
    interval REAL,
    trigger_count INTEGER NOT NULL,
    try_count INTEGER NOT NULL,
    max_try_count INTEGER NOT NULL,
    max_count INTEGER NOT NULL,
    is_abandoned INTEGER NOT NULL,
    next_run_time TEXT,
    last_run_time TEXT,
    result TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

COLUMNS = (
    "job_key",
    "name",
    "job_type",
    "status",
    "args",
    "cron",
    "interval",
    "trigger_count",
    "try_count",
    "max_try_count",
    "max_count",
    "is_abandoned",
    "next_run_time",
    "last_run_time",
    "result",
)

SELECT_JOBS_QUERY = "SELECT {columns} FROM {table_name}"

SELECT_JOB_QUERY = "SELECT {columns} FROM {table_name} WHERE job_key = ?;"

UPSERT_JOB_QUERY = """
INSERT INTO {table_name} ({columns})
VALUES ({placeholder})
ON CONFLICT (job_key) DO UPDATE SET
    {updates},
    updated_at = CURRENT_TIMESTAMP;
"""

DELETE_JOB_QUERY = """
DELETE FROM {} WHERE job_key = ?;
"""

ReturnT = TypeVar("ReturnT")


def _dump_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SQLiteJobStore(JobStore):
    """Job store backed by a single SQLite table.

    Blocking sqlite3 calls run in an executor. One connection is shared
    between threads and guarded by a lock.
    """

    def __init__(
        self,
        database: str | Path = "jobkeeper.db",
        *,
        table_name: str = "jobkeeper_jobs",
        timeout: float = 20.0,
    ) -> None:
        validate_table_name(table_name)
        self.database: Path = (
            Path(database) if isinstance(database, str) else database
        )
        self.table_name: str = table_name
        self.timeout: float = timeout
        self.tz: ZoneInfo = ZoneInfo("UTC")
        self.getloop: LoopFactory = asyncio.get_running_loop
        self.threadpool: ThreadPoolExecutor | None = None
        self._conn: sqlite3.Connection | None = None
        self._lock: threading.Lock = threading.Lock()

        columns = ", ".join(COLUMNS)
        self.create_jobs_table_query: str = CREATE_JOBS_TABLE_QUERY.format(
            table_name,
        )
        self.select_jobs_query: str = SELECT_JOBS_QUERY.format(
            columns=columns,
            table_name=table_name,
        )
        self.select_job_query: str = SELECT_JOB_QUERY.format(
            columns=columns,
            table_name=table_name,
        )
        self.upsert_job_query: str = UPSERT_JOB_QUERY.format(
            table_name=table_name,
            columns=columns,
            placeholder=", ".join("?" * len(COLUMNS)),
            updates=",\n    ".join(
                f"{col} = EXCLUDED.{col}" for col in COLUMNS[1:]
            ),
        )
        self.delete_job_query: str = DELETE_JOB_QUERY.format(table_name)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            msg = "Database not initialized. Call startup() first."
            raise RuntimeError(msg)
        return self._conn

    async def _to_thread(self, func: Callable[[], ReturnT]) -> ReturnT:
        def thread_safe() -> ReturnT:
            with self._lock:
                return func()

        loop = self.getloop()
        return await loop.run_in_executor(self.threadpool, thread_safe)

    def _load_time(self, value: str | None) -> datetime | None:
        if value is None:
            return None
        return datetime.fromisoformat(value).astimezone(self.tz)

    def _to_row(self, job_info: JobInfo) -> tuple[Any, ...]:
        return (
            job_info.key,
            job_info.name,
            job_info.job_type.value,
            job_info.status.value,
            json.dumps(job_info.args),
            job_info.cron,
            job_info.interval,
            job_info.trigger_count,
            job_info.try_count,
            job_info.max_try_count,
            job_info.max_count,
            int(job_info.is_abandoned),
            _dump_time(job_info.next_run_time),
            _dump_time(job_info.last_run_time),
            job_info.result,
        )

    def _from_row(self, row: tuple[Any, ...]) -> JobInfo:
        return JobInfo(
            key=row[0],
            name=row[1],
            job_type=JobType(row[2]),
            status=JobStatus(row[3]),
            args=json.loads(row[4]),
            cron=row[5],
            interval=row[6],
            trigger_count=row[7],
            try_count=row[8],
            max_try_count=row[9],
            max_count=row[10],
            is_abandoned=bool(row[11]),
            next_run_time=self._load_time(row[12]),
            last_run_time=self._load_time(row[13]),
            result=row[14],
        )

    @override
    async def startup(self) -> None:
        conn = sqlite3.connect(
            database=self.database,
            timeout=self.timeout,
            check_same_thread=False,
        )
        _ = conn.execute("PRAGMA journal_mode=WAL;")
        _ = conn.execute("PRAGMA synchronous=NORMAL;")
        _ = conn.execute(self.create_jobs_table_query)
        conn.commit()
        self._conn = conn
        logger.debug("SQLite job store opened at %s", self.database)

    @override
    async def shutdown(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @override
    async def find(self, key: str) -> JobInfo | None:
        def select() -> tuple[Any, ...] | None:
            cursor = self.conn.execute(self.select_job_query, (key,))
            return cursor.fetchone()

        row = await self._to_thread(select)
        return self._from_row(row) if row is not None else None

    @override
    async def get_jobs(self) -> list[JobInfo]:
        def select_all() -> list[tuple[Any, ...]]:
            return self.conn.execute(self.select_jobs_query).fetchall()

        rows = await self._to_thread(select_all)
        return [self._from_row(row) for row in rows]

    @override
    async def store(self, job_info: JobInfo) -> None:
        row = self._to_row(job_info)

        def upsert() -> None:
            with self.conn as conn:
                _ = conn.execute(self.upsert_job_query, row)

        return await self._to_thread(upsert)

    @override
    async def delete(self, key: str) -> None:
        def delete() -> None:
            with self.conn as conn:
                _ = conn.execute(self.delete_job_query, (key,))

        return await self._to_thread(delete)
