"""Client library for the task tracker API: ordered task store with offline fallback."""

from .cache import InMemoryCache, LocalDurableCache
from .config import ClientSettings, get_settings
from .errors import ErrorKind, MutationResult, SyncResult
from .models import Category, Priority, Task
from .store import OrderedTaskStore, TaskStats
from .sync import SyncClient

__all__ = [
    "Category",
    "ClientSettings",
    "ErrorKind",
    "InMemoryCache",
    "LocalDurableCache",
    "MutationResult",
    "OrderedTaskStore",
    "Priority",
    "SyncClient",
    "SyncResult",
    "Task",
    "TaskStats",
    "get_settings",
]
