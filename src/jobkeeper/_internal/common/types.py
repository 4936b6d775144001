import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from jobkeeper._internal.job_info import JobInfo

LoopFactory: TypeAlias = Callable[[], asyncio.AbstractEventLoop]
FireHook: TypeAlias = Callable[[JobInfo], None]
Payload: TypeAlias = Callable[..., Awaitable[Any] | Any]
