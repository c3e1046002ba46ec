"""
Kanban board view-model: a project's tasks split into three status columns.

Moves left/right follow the fixed adjacency todo <-> in-progress <-> done.
The data layer itself accepts any status, so move_task() can jump columns.
"""
from typing import Dict, List, Optional

from .client import DataService
from .notices import Notices
from .result import Err, ErrorKind, Result
from .schema import (
    STATUS_ORDER, Task, TaskInsert, TaskPriority, TaskStatus, TaskUpdate,
)
from .sync import TaskBoardSync

EMPTY_COLUMN_MESSAGE = "No tasks"

LEFT = "left"
RIGHT = "right"


def neighbor_status(status: TaskStatus, direction: str) -> Optional[TaskStatus]:
    """Adjacent column in `direction`, or None at the board edge."""
    idx = STATUS_ORDER.index(status)
    if direction == LEFT:
        idx -= 1
    elif direction == RIGHT:
        idx += 1
    else:
        raise ValueError(f"Unknown direction: {direction}")
    if 0 <= idx < len(STATUS_ORDER):
        return STATUS_ORDER[idx]
    return None


def can_move(task: Task, direction: str) -> bool:
    return neighbor_status(task.status, direction) is not None


class KanbanBoard:
    """Board for one project. Call load() before reading columns."""

    def __init__(self, service: DataService, project_id: str,
                 notices: Optional[Notices] = None):
        self.project_id = project_id
        self.tasks = TaskBoardSync(service, notices)
        # Create form: open flag + the column new tasks go into
        self.creating = False
        self.selected_status = TaskStatus.TODO

    async def load(self) -> Result:
        return await self.tasks.load(self.project_id)

    def dispose(self) -> None:
        self.tasks.dispose()

    # ── Columns ────────────────────────────────

    def column(self, status: TaskStatus) -> List[Task]:
        return [t for t in self.tasks.rows if t.status == status]

    def columns(self) -> Dict[TaskStatus, List[Task]]:
        return {status: self.column(status) for status in STATUS_ORDER}

    def counts(self) -> Dict[TaskStatus, int]:
        return {status: len(tasks) for status, tasks in self.columns().items()}

    def ordered(self) -> List[Task]:
        """Tasks in display order: column by column, board order within each."""
        result = []
        for status in STATUS_ORDER:
            result.extend(self.column(status))
        return result

    def _next_position(self) -> int:
        if not self.tasks.rows:
            return 0
        return max(t.position for t in self.tasks.rows) + 1

    # ── Actions ────────────────────────────────

    def open_create(self, status: TaskStatus = TaskStatus.TODO) -> None:
        self.selected_status = status
        self.creating = True

    def close_create(self) -> None:
        self.creating = False

    async def create_task(
        self,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.MEDIUM,
        deadline: Optional[str] = None,
    ) -> Result:
        """Insert into the selected column; the form stays open on failure."""
        payload = TaskInsert(
            project_id=self.project_id,
            title=title,
            description=description,
            status=self.selected_status,
            priority=priority,
            deadline=deadline,
            position=self._next_position(),
        )
        result = await self.tasks.create(payload)
        if result.ok:
            self.close_create()
        return result

    async def move_task(self, task_id: str, new_status: TaskStatus) -> Result:
        return await self.tasks.mutate(task_id, TaskUpdate(status=new_status))

    async def move(self, task_id: str, direction: str) -> Result:
        task = self.tasks.find(task_id)
        if task is None:
            return Err(ErrorKind.NOT_FOUND, f"task {task_id} is not on the board")
        target = neighbor_status(task.status, direction)
        if target is None:
            return Err(ErrorKind.QUERY, f"cannot move {direction} from {task.status.title}")
        return await self.move_task(task_id, target)

    async def move_left(self, task_id: str) -> Result:
        return await self.move(task_id, LEFT)

    async def move_right(self, task_id: str) -> Result:
        return await self.move(task_id, RIGHT)

    async def delete_task(self, task_id: str) -> Result:
        return await self.tasks.destroy(task_id)
