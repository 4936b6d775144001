"""Package provides the job stores shipped with jobkeeper."""

from jobkeeper._internal.storage.memory import InMemoryJobStore
from jobkeeper._internal.storage.sqlite import SQLiteJobStore

__all__ = ("InMemoryJobStore", "SQLiteJobStore")
