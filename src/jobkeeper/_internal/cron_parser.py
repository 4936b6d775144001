from abc import ABCMeta, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol, TypeAlias, final, runtime_checkable

from typing_extensions import override

Expression: TypeAlias = str
CronFactory: TypeAlias = Callable[[Expression], "CronParser"]


@runtime_checkable
class CronParser(Protocol, metaclass=ABCMeta):
    @abstractmethod
    def next_run(self, *, now: datetime) -> datetime:
        raise NotImplementedError


@final
class Interval(CronParser):
    """Fixed-rate trigger, fires every `seconds` after `now`."""

    __slots__: tuple[str, ...] = ("seconds",)

    def __init__(self, seconds: float) -> None:
        if seconds <= 0:
            msg = f"Interval must be > 0 seconds, got {seconds}."
            raise ValueError(msg)
        self.seconds: float = seconds

    @override
    def next_run(self, *, now: datetime) -> datetime:
        return now + timedelta(seconds=self.seconds)
