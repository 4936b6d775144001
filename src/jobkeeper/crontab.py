"""Cron triggers backed by the `crontab` library."""

from datetime import datetime
from typing import Final

from crontab import CronTab as _CronTab
from typing_extensions import override

from jobkeeper._internal.cron_parser import CronParser


class CronTab(CronParser):
    """Cron expression trigger based on the `crontab` library."""

    __slots__: tuple[str, ...] = ("_entry", "expression")

    def __init__(self, expression: str) -> None:
        """Initialize a CronTab trigger.

        Args:
            expression: A cron expression, e.g. ``"*/5 * * * *"``.

        Raises:
            ValueError: If the expression cannot be parsed.

        """
        self.expression: Final = expression
        self._entry: Final = _CronTab(expression)

    @override
    def next_run(self, *, now: datetime) -> datetime:
        """Return the first fire time strictly after `now`."""
        return self._entry.next(now=now, return_datetime=True)  # type: ignore[no-any-return] # pyright: ignore[reportAttributeAccessIssue,reportUnknownMemberType,reportUnknownVariableType]


def create_crontab(expression: str) -> CronTab:
    return CronTab(expression)
