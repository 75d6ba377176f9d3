"""Client-side task model and its record (JSON dict) conversions.

Records use the API's camelCase keys. The same shape is written to the local
cache, so a cached snapshot and a server response are read the same way.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Category(str, Enum):
    WORK = "Work"
    PERSONAL = "Personal"
    URGENT = "Urgent"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Fields callers may change through `OrderedTaskStore.update`.
EDITABLE_FIELDS = ("title", "description", "category", "priority", "completed", "due_date")

_WIRE_NAMES = {"due_date": "dueDate"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_task_id() -> str:
    """Id for a task the server has not confirmed yet."""
    return f"local-{uuid.uuid4().hex}"


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (a trailing 'Z' is accepted). Naive values are taken as UTC."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        value = raw
    else:
        value = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


@dataclass
class Task:
    id: str
    owner: str
    title: str
    description: str = ""
    category: Category = Category.WORK
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    due_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    order: int = 0

    def is_overdue(self, now: datetime) -> bool:
        return not self.completed and self.due_date is not None and self.due_date < now

    def copy(self, **changes) -> "Task":
        return replace(self, **changes)


def clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Keep the editable fields only, coerced to their Python types."""
    cleaned: Dict[str, Any] = {}
    for name, value in fields.items():
        if name not in EDITABLE_FIELDS:
            continue
        if name == "category":
            value = Category(value)
        elif name == "priority":
            value = Priority(value)
        elif name == "completed":
            value = bool(value)
        elif name == "due_date":
            value = parse_timestamp(value)
        cleaned[name] = value
    return cleaned


def fields_to_record(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Editable fields -> request body keys/values."""
    body: Dict[str, Any] = {}
    for name, value in fields.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = format_timestamp(value)
        body[_WIRE_NAMES.get(name, name)] = value
    return body


def task_to_record(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "userId": task.owner,
        "title": task.title,
        "description": task.description,
        "category": task.category.value,
        "priority": task.priority.value,
        "completed": task.completed,
        "dueDate": format_timestamp(task.due_date),
        "createdAt": format_timestamp(task.created_at),
        "order": task.order,
    }


def task_from_record(record: Dict[str, Any], owner: Optional[str] = None) -> Task:
    """Build a Task from a server or cache record.

    Accepts the legacy `_id` key; a missing description becomes "" and a
    missing order becomes 0. `owner` fills in records without a userId.

    Raises:
        KeyError / ValueError for records without an id, a title, or with
        values outside the category/priority enumerations; TypeError when
        `record` is not a dict.
    """
    if not isinstance(record, dict):
        raise TypeError(f"task record must be an object, got {type(record).__name__}")
    task_id = record.get("id", record.get("_id"))
    if task_id is None:
        raise KeyError("id")
    user_id = record.get("userId", owner)
    return Task(
        id=str(task_id),
        owner="" if user_id is None else str(user_id),
        title=str(record["title"]),
        description=record.get("description") or "",
        category=Category(record.get("category") or Category.WORK.value),
        priority=Priority(record.get("priority") or Priority.MEDIUM.value),
        completed=bool(record.get("completed", False)),
        due_date=parse_timestamp(record.get("dueDate")),
        created_at=parse_timestamp(record.get("createdAt")) or utcnow(),
        order=int(record.get("order") or 0),
    )
