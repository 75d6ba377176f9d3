"""In-memory ordered task list for one signed-in user.

Every mutation is optimistic: the list changes synchronously, before the
first await, and only then is the server told about it. A failed call never
rolls the list back; the list is mirrored into the local cache and the
failure comes back as `MutationResult.warning`. The next successful
`load()` replaces whatever the client had (last fetch wins).

After add/remove/move the `order` values of the list are exactly 0..n-1.

A task removed while its create call is still pending is deleted on the
server once the create confirms. Edits made in that window go out with the
local id, come back NOT_FOUND, and are lost on the server until the task is
edited again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from .cache import LocalDurableCache
from .config import ClientSettings, get_settings
from .errors import MutationResult
from .models import Category, Priority, Task, clean_fields, local_task_id, utcnow
from .sync import SyncClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskStats:
    total: int
    completed: int
    pending: int
    overdue: int


def demo_tasks(owner: str, now: Optional[datetime] = None) -> List[Task]:
    """Starter list shown when neither the server nor the cache has anything."""
    now = now or utcnow()
    day = timedelta(days=1)
    return [
        Task(
            id="demo-1",
            owner=owner,
            title="Complete project proposal",
            description="Finish the proposal document for the client meeting",
            category=Category.WORK,
            priority=Priority.HIGH,
            due_date=now + 2 * day,
            created_at=now,
            order=0,
        ),
        Task(
            id="demo-2",
            owner=owner,
            title="Grocery shopping",
            description="Buy milk, eggs, bread, and vegetables",
            category=Category.PERSONAL,
            priority=Priority.MEDIUM,
            due_date=now + day,
            created_at=now,
            order=1,
        ),
        Task(
            id="demo-3",
            owner=owner,
            title="Pay utility bills",
            description="Pay electricity and water bills",
            category=Category.URGENT,
            priority=Priority.HIGH,
            due_date=now,
            created_at=now,
            order=2,
        ),
    ]


def _clamp(index: int, size: int) -> int:
    return max(0, min(index, size - 1))


class OrderedTaskStore:
    """Task list of one owner for the lifetime of an authenticated session.

    Create one per login and `close()` it on logout (or use `async with`).
    """

    def __init__(self, owner: str, sync: SyncClient, cache):
        self.owner = str(owner)
        self._sync = sync
        self._cache = cache
        self._tasks: List[Task] = []
        self._closed = False

    @classmethod
    def for_session(
        cls, owner: str, token: str, settings: Optional[ClientSettings] = None, **sync_kwargs
    ) -> "OrderedTaskStore":
        """Wire a store from client settings: HTTP client with `token`, file cache."""
        settings = settings or get_settings()
        sync_kwargs.setdefault("timeout", settings.timeout_seconds)
        sync = SyncClient(settings.api_url, token, **sync_kwargs)
        return cls(owner, sync, LocalDurableCache(settings.cache_dir))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._tasks = []
        await self._sync.aclose()
        logger.info("Task store closed owner=%s", self.owner)

    async def __aenter__(self) -> "OrderedTaskStore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ---- reads ----

    @property
    def tasks(self) -> List[Task]:
        return [t.copy() for t in self._tasks]

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, task_id: str) -> Optional[Task]:
        task = self._find(task_id)
        return task.copy() if task else None

    def filtered_view(
        self,
        category: Optional[Union[Category, str]] = None,
        priority: Optional[Union[Priority, str]] = None,
        include_completed: bool = True,
    ) -> List[Task]:
        category = Category(category) if category else None
        priority = Priority(priority) if priority else None
        view = [
            t.copy()
            for t in self._tasks
            if (category is None or t.category == category)
            and (priority is None or t.priority == priority)
            and (include_completed or not t.completed)
        ]
        return sorted(view, key=lambda t: t.order)

    def stats(self, now: Optional[datetime] = None) -> TaskStats:
        now = now or utcnow()
        total = len(self._tasks)
        completed = sum(1 for t in self._tasks if t.completed)
        overdue = sum(1 for t in self._tasks if t.is_overdue(now))
        return TaskStats(total=total, completed=completed, pending=total - completed, overdue=overdue)

    # ---- helpers ----

    def _find(self, task_id: str) -> Optional[Task]:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def _index_of(self, task_id: str) -> int:
        for i, t in enumerate(self._tasks):
            if t.id == task_id:
                return i
        return -1

    def _renumber(self) -> None:
        for i, t in enumerate(self._tasks):
            t.order = i

    def _mirror(self) -> None:
        try:
            self._cache.write(self.owner, self._tasks)
        except OSError:
            logger.exception("Could not write task cache owner=%s", self.owner)

    def _settle(self, result, action: str) -> MutationResult:
        outcome = MutationResult.from_sync(result)
        if not outcome.confirmed:
            logger.warning("%s kept locally, server did not confirm (%s)", action, outcome.warning.value)
        self._mirror()
        return outcome

    # ---- load ----

    async def load(self) -> MutationResult:
        """Replace the list with the server's; fall back to the cache, then to demo tasks."""
        result = await self._sync.fetch_all()
        if result.ok:
            self._tasks = sorted(result.value, key=lambda t: t.order)
            self._mirror()
            logger.info("Loaded %s tasks owner=%s", len(self._tasks), self.owner)
            return MutationResult(applied=True, confirmed=True)

        cached = self._cache.read(self.owner)
        if cached is not None:
            self._tasks = cached
            logger.warning("Server unavailable (%s), using cached tasks", result.error.value)
        else:
            self._tasks = demo_tasks(self.owner)
            self._mirror()
            logger.warning("Server unavailable (%s) and no cache, seeded demo tasks", result.error.value)
        return MutationResult(applied=True, confirmed=False, warning=result.error)

    # ---- mutations ----

    async def add(self, fields: Dict[str, Any]) -> MutationResult:
        data = clean_fields(fields)
        task = Task(id=local_task_id(), owner=self.owner, order=len(self._tasks), **data)
        self._tasks.append(task)
        self._mirror()

        result = await self._sync.create(data)
        if result.ok:
            current = self._find(task.id)
            if current is not None:
                current.id = result.value.id
                current.created_at = result.value.created_at
            else:
                # removed while the create was in flight; drop the server copy too
                logger.warning("Task %s was removed before the server created it", task.id)
                await self._sync.delete(result.value.id)
        return self._settle(result, "add")

    async def update(self, task_id: str, fields: Dict[str, Any]) -> MutationResult:
        task = self._find(task_id)
        if task is None:
            return MutationResult.noop()
        data = clean_fields(fields)
        if not data:
            return MutationResult.noop()
        for name, value in data.items():
            setattr(task, name, value)
        self._mirror()

        result = await self._sync.update(task_id, data)
        return self._settle(result, "update")

    async def remove(self, task_id: str) -> MutationResult:
        index = self._index_of(task_id)
        if index < 0:
            return MutationResult.noop()
        del self._tasks[index]
        self._renumber()
        self._mirror()

        result = await self._sync.delete(task_id)
        return self._settle(result, "remove")

    async def toggle_completion(self, task_id: str) -> MutationResult:
        task = self._find(task_id)
        if task is None:
            return MutationResult.noop()
        return await self.update(task_id, {"completed": not task.completed})

    async def move(self, from_index: int, to_index: int) -> MutationResult:
        size = len(self._tasks)
        if size == 0:
            return MutationResult.noop()
        from_index = _clamp(from_index, size)
        to_index = _clamp(to_index, size)
        if from_index == to_index:
            return MutationResult.noop()

        task = self._tasks.pop(from_index)
        self._tasks.insert(to_index, task)
        self._renumber()
        self._mirror()

        result = await self._sync.reorder([(t.id, t.order) for t in self._tasks])
        return self._settle(result, "move")

    async def reorder(self, task_id: str, new_index: int) -> MutationResult:
        """Move the task with `task_id` to `new_index`."""
        index = self._index_of(task_id)
        if index < 0:
            return MutationResult.noop()
        return await self.move(index, new_index)
