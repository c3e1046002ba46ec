"""
Row schema for projects, tasks and notes.

Each entity has three shapes:
  Row     - what the data service returns (Project, Task, Note)
  Insert  - what a caller sends to create one; server fills id/timestamps
  Update  - a partial field set; fields left UNSET are not sent

Timestamps and deadlines stay ISO-8601 strings as delivered by the service;
ordering is always done server-side.
"""
from enum import Enum
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


PROJECTS = "projects"
TASKS = "tasks"
NOTES = "notes"

DEFAULT_NOTE_TITLE = "Untitled Note"


def utc_now() -> str:
    """ISO-8601 UTC timestamp with microseconds (sortable as text)."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class TaskStatus(Enum):
    """Kanban columns, left to right."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            try:
                return cls[value.upper().replace("-", "_")]
            except (KeyError, AttributeError):
                return cls.TODO

    @property
    def title(self) -> str:
        return STATUS_TITLES[self]


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: str) -> "TaskPriority":
        try:
            return cls(value)
        except ValueError:
            try:
                return cls[value.upper()]
            except (KeyError, AttributeError):
                return cls.MEDIUM


STATUS_ORDER: Tuple[TaskStatus, ...] = (
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)

STATUS_TITLES: Dict[TaskStatus, str] = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
}

# Columns per table; backends validate filter/order/field names against these.
COLUMNS: Dict[str, Tuple[str, ...]] = {
    PROJECTS: ("id", "user_id", "title", "description", "created_at"),
    TASKS: (
        "id", "project_id", "title", "description", "status",
        "priority", "deadline", "position", "created_at",
    ),
    NOTES: ("id", "project_id", "title", "content", "updated_at", "created_at"),
}


class _Unset:
    """Marker for update fields that should not be sent."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rows
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class Project:
    id: str
    user_id: str
    title: str
    description: str = ""
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=str(data.get("id", "")),
            user_id=str(data.get("user_id", "")),
            title=data.get("title", ""),
            description=data.get("description") or "",
            created_at=data.get("created_at") or "",
        )


@dataclass
class Task:
    id: str
    project_id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: Optional[str] = None
    position: int = 0
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "deadline": self.deadline,
            "position": self.position,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get("id", "")),
            project_id=str(data.get("project_id", "")),
            title=data.get("title", ""),
            description=data.get("description") or "",
            status=TaskStatus.from_str(data.get("status") or "todo"),
            priority=TaskPriority.from_str(data.get("priority") or "medium"),
            deadline=data.get("deadline") or None,
            position=int(data.get("position") or 0),
            created_at=data.get("created_at") or "",
        )


@dataclass
class Note:
    id: str
    project_id: str
    title: str = DEFAULT_NOTE_TITLE
    content: str = ""
    updated_at: str = ""
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "content": self.content,
            "updated_at": self.updated_at,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Note":
        return cls(
            id=str(data.get("id", "")),
            project_id=str(data.get("project_id", "")),
            title=data.get("title") if data.get("title") is not None else DEFAULT_NOTE_TITLE,
            content=data.get("content") or "",
            updated_at=data.get("updated_at") or "",
            created_at=data.get("created_at") or "",
        )


ROW_TYPES = {PROJECTS: Project, TASKS: Task, NOTES: Note}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Inserts
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class ProjectInsert:
    user_id: str
    title: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description or "",
        }


@dataclass
class TaskInsert:
    project_id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: Optional[str] = None
    position: Optional[int] = None  # None = server default

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description or "",
            "status": self.status.value,
            "priority": self.priority.value,
            "deadline": self.deadline or None,
        }
        if self.position is not None:
            data["position"] = self.position
        return data


@dataclass
class NoteInsert:
    project_id: str
    title: str = DEFAULT_NOTE_TITLE
    content: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "title": self.title,
            "content": self.content,
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Updates
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _set_fields(update) -> Dict[str, Any]:
    """Collect the fields of an update dataclass that were actually set."""
    data = {}
    for f in fields(update):
        value = getattr(update, f.name)
        if value is UNSET:
            continue
        if isinstance(value, Enum):
            value = value.value
        data[f.name] = value
    return data


@dataclass
class ProjectUpdate:
    title: Any = UNSET
    description: Any = UNSET

    def to_dict(self) -> Dict[str, Any]:
        return _set_fields(self)


@dataclass
class TaskUpdate:
    title: Any = UNSET
    description: Any = UNSET
    status: Any = UNSET
    priority: Any = UNSET
    deadline: Any = UNSET
    position: Any = UNSET

    def to_dict(self) -> Dict[str, Any]:
        return _set_fields(self)


@dataclass
class NoteUpdate:
    title: Any = UNSET
    content: Any = UNSET
    updated_at: Any = UNSET

    def to_dict(self) -> Dict[str, Any]:
        return _set_fields(self)
