"""Per-owner snapshot of the last known task list.

Read only when the server cannot be reached; written after every list change.
A snapshot is never a source of truth: the next successful fetch replaces it.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from .models import Task, task_from_record, task_to_record

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class LocalDurableCache:
    """One JSON file per owner (`tasks_<owner>.json`) under `cache_dir`."""

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)

    def path_for(self, owner: str) -> Path:
        return self.cache_dir / f"tasks_{_UNSAFE.sub('_', str(owner))}.json"

    def read(self, owner: str) -> Optional[List[Task]]:
        """Return the cached list in stored order, or None when there is no usable snapshot."""
        path = self.path_for(owner)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                records = json.load(f)
            if not isinstance(records, list):
                raise TypeError("task cache must hold a list")
            return [task_from_record(r, owner=owner) for r in records]
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("Ignoring unreadable task cache %s", path, exc_info=True)
            return None

    def write(self, owner: str, tasks: List[Task]) -> None:
        """Replace the owner's snapshot (temp file + rename, so readers never see half a file)."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(owner)
        payload = [task_to_record(t) for t in tasks]
        fd, tmp = tempfile.mkstemp(dir=str(self.cache_dir), prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        logger.debug("Task cache written owner=%s count=%s", owner, len(tasks))

    def clear(self, owner: str) -> None:
        path = self.path_for(owner)
        if path.exists():
            path.unlink()


class InMemoryCache:
    """Same interface as LocalDurableCache, kept in a dict (tests, throwaway sessions)."""

    def __init__(self):
        self._snapshots: Dict[str, List[dict]] = {}

    def read(self, owner: str) -> Optional[List[Task]]:
        records = self._snapshots.get(owner)
        if records is None:
            return None
        try:
            return [task_from_record(r, owner=owner) for r in records]
        except (KeyError, ValueError, TypeError):
            logger.warning("Ignoring unreadable in-memory task snapshot owner=%s", owner, exc_info=True)
            return None

    def write(self, owner: str, tasks: List[Task]) -> None:
        self._snapshots[owner] = [task_to_record(t) for t in tasks]

    def clear(self, owner: str) -> None:
        self._snapshots.pop(owner, None)
