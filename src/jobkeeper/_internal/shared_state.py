from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import asyncio


@dataclass(slots=True, kw_only=True, frozen=True)
class SharedState:
    pending_tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def track_task(self, task: asyncio.Task[Any]) -> None:
        self.pending_tasks.add(task)
        task.add_done_callback(self.pending_tasks.discard)

    def is_running(self, name: str) -> bool:
        return any(task.get_name() == name for task in self.pending_tasks)
