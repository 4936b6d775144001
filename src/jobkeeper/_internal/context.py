from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(slots=True, kw_only=True, frozen=True)
class ExecutionContext:
    key: str
    next_run_time: datetime | None = None
    last_run_time: datetime | None = None
    result: str | None = None
    exception: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.exception is not None

    def outcome_text(self) -> str | None:
        if self.exception is not None:
            return str(self.exception)
        return self.result
