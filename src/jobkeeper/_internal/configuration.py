from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from concurrent.futures import ThreadPoolExecutor
    from zoneinfo import ZoneInfo

    from jobkeeper._internal.common.types import LoopFactory
    from jobkeeper._internal.cron_parser import CronFactory
    from jobkeeper._internal.scheduler.abc import JobScheduler
    from jobkeeper._internal.storage.abc import JobStore


@dataclass(slots=True, kw_only=True)
class KeeperConfiguration:
    tz: ZoneInfo
    store: JobStore
    scheduler: JobScheduler
    getloop: LoopFactory
    cron_factory: CronFactory
    threadpool: ThreadPoolExecutor | None = None
    app_started: bool = False
