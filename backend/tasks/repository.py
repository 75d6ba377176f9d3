"""Owner-scoped access to task records.

Every lookup is filtered by the owning user, so a task that exists but belongs
to somebody else behaves exactly like a missing one (`Task.DoesNotExist`).

Single-record writes go through one UPDATE/INSERT/DELETE statement each and
rely on the database for atomicity. `apply_order` deliberately does not wrap
the batch in a transaction unless asked to.
"""

import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Tuple

from django.db import DatabaseError, transaction
from django.db.models import F, Max

from .models import Task

logger = logging.getLogger(__name__)

# Fields a client may set through create/update. `owner`, `id`, `order` and
# `created_at` are managed here.
WRITABLE_FIELDS = ("title", "description", "category", "priority", "completed", "due_date")


def _parse_id(raw: Any) -> Optional[uuid.UUID]:
    """Return a UUID for `raw`, or None when it cannot identify a stored task."""
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError, AttributeError):
        return None


class TaskRepository:
    """Task storage for a single owner."""

    def __init__(self, owner):
        self.owner = owner

    def _queryset(self):
        return Task.objects.filter(owner=self.owner)

    def list(self):
        return list(self._queryset().order_by("order", "created_at"))

    def get(self, task_id) -> Task:
        pk = _parse_id(task_id)
        if pk is None:
            raise Task.DoesNotExist(f"Task {task_id!r} not found")
        return self._queryset().get(pk=pk)

    def next_order(self) -> int:
        """Order for a newly appended task: current max + 1, or 0 for an empty list."""
        highest = self._queryset().aggregate(highest=Max("order"))["highest"]
        return 0 if highest is None else highest + 1

    def create(self, **fields) -> Task:
        data = {k: v for k, v in fields.items() if k in WRITABLE_FIELDS}
        task = Task(owner=self.owner, order=self.next_order(), **data)
        task.save()
        logger.info("Task created id=%s owner=%s order=%s", task.pk, self.owner.pk, task.order)
        return task

    def update(self, task_id, **fields) -> Task:
        task = self.get(task_id)
        data = {k: v for k, v in fields.items() if k in WRITABLE_FIELDS}
        if not data:
            return task
        for name, value in data.items():
            setattr(task, name, value)
        task.save(update_fields=list(data))
        logger.debug("Task updated id=%s fields=%s", task.pk, sorted(data))
        return task

    def delete(self, task_id) -> None:
        """Delete a task and shift later tasks down by one so the owner's orders stay contiguous."""
        with transaction.atomic():
            task = self.get(task_id)
            removed_order = task.order
            task.delete()
            shifted = self._queryset().filter(order__gt=removed_order).update(order=F("order") - 1)
        logger.info("Task deleted id=%s owner=%s shifted=%s", task_id, self.owner.pk, shifted)

    def apply_order(self, entries: Iterable[Dict[str, Any]], atomic: bool = False) -> Tuple[int, int]:
        """Apply `{id, order}` entries as independent single-row updates.

        Entries whose id is malformed, unknown, or owned by another user are
        skipped. A failing entry is logged and counted as skipped; the rest of
        the batch still applies. With `atomic=True` the whole batch runs in one
        transaction and any database error propagates.

        Returns:
            (applied, skipped) counts.
        """
        entries = list(entries)
        if atomic:
            with transaction.atomic():
                return self._apply_entries(entries, best_effort=False)
        return self._apply_entries(entries, best_effort=True)

    def _apply_entries(self, entries, best_effort: bool) -> Tuple[int, int]:
        applied = 0
        skipped = 0
        for index, entry in enumerate(entries):
            pk = _parse_id(entry.get("id"))
            order = entry.get("order")
            if order is None:
                order = index  # position in the payload
            if pk is None:
                skipped += 1
                continue
            try:
                updated = self._queryset().filter(pk=pk).update(order=order)
            except DatabaseError:
                if not best_effort:
                    raise
                logger.exception("Reorder entry failed id=%s owner=%s", pk, self.owner.pk)
                skipped += 1
                continue
            if updated:
                applied += 1
            else:
                skipped += 1
        logger.info("Reorder owner=%s applied=%s skipped=%s", self.owner.pk, applied, skipped)
        return applied, skipped
