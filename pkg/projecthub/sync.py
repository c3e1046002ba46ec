"""
View-state synchronizer.

One instance backs each list view (project list, task board, note list). It
keeps a local cache of "all rows whose filter column equals the key" and
keeps it consistent with the data service by pulling:

    load(key)          replace the whole cache with a fresh, server-sorted read
    create(payload)    insert one row, then load
    mutate(id, fields) update one row, then load
    destroy(id)        delete one row, then load

The cache is never updated optimistically. Every operation returns
Ok(...) / Err(kind, message); failures are also logged and posted as notices.

Loads are sequenced: a result is applied only if no newer load was issued
since, so a slow response can't overwrite a fresher cache. After dispose()
late results are dropped and new operations are refused.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from .client import DataService, DataServiceError, Filter, Order
from .notices import Notices
from .result import Err, ErrorKind, Ok, Result
from .schema import NOTES, PROJECTS, TASKS, Note, Project, Task

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


def report_failure(action: str, error: DataServiceError,
                   notices: Optional[Notices] = None) -> Err:
    """Log a failed data service call, post it as a notice, wrap it as Err."""
    message = f"Error {action}: {error}"
    logger.error(message)
    if notices is not None:
        notices.error(message)
    return Err(error.kind, str(error))


class Synchronizer(Generic[RowT]):
    """Pull-based cache of one filtered, ordered row set."""

    table: str = ""
    filter_column: str = ""
    order: Optional[Order] = None
    row_type: Type = dict

    def __init__(self, service: DataService, notices: Optional[Notices] = None):
        self.service = service
        self.notices = notices
        self.rows: List[RowT] = []
        self.filter_key: Optional[str] = None
        self.loaded = False
        self._load_seq = 0
        self._disposed = False
        self._subscribers: List[Callable[[List[RowT]], None]] = []

    # ──────────────────────────────────────────
    # Subscription / lifecycle
    # ──────────────────────────────────────────

    def subscribe(self, callback: Callable[[List[RowT]], None]) -> Callable[[], None]:
        """Call `callback(rows)` after every accepted load. Returns an unsubscribe."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def dispose(self) -> None:
        """Detach from the view: drop in-flight results, refuse new work."""
        self._disposed = True
        self._subscribers.clear()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _convert(self, data: Dict[str, Any]) -> RowT:
        if self.row_type is dict:
            return data
        return self.row_type.from_dict(data)

    def _fail(self, action: str, error: DataServiceError) -> Err:
        return report_failure(action, error, self.notices)

    def _refused(self) -> Err:
        return Err(ErrorKind.DISPOSED, f"{self.table} view is closed")

    def _filters(self, key: Any) -> List[Filter]:
        if not self.filter_column:
            return []
        return [Filter(self.filter_column, "eq", key)]

    # ──────────────────────────────────────────
    # Operations
    # ──────────────────────────────────────────

    async def load(self, filter_key: Any = None) -> Result:
        """
        Replace the cache with every row matching filter_key.

        With no argument, reloads with the last key. On failure the cache
        keeps its previous value.
        """
        if self._disposed:
            return self._refused()
        if filter_key is not None:
            self.filter_key = filter_key
        self._load_seq += 1
        seq = self._load_seq

        try:
            data = await asyncio.to_thread(
                self.service.select, self.table, self._filters(self.filter_key), self.order
            )
        except DataServiceError as e:
            if self._disposed or seq != self._load_seq:
                return Err(e.kind, str(e))
            return self._fail(f"loading {self.table}", e)

        if self._disposed:
            logger.debug(f"Dropping {self.table} load: view disposed")
            return self._refused()
        if seq != self._load_seq:
            logger.debug(f"Dropping stale {self.table} load #{seq} (latest #{self._load_seq})")
            return Ok(self.rows)

        self.rows = [self._convert(row) for row in data]
        self.loaded = True
        for callback in list(self._subscribers):
            callback(self.rows)
        return Ok(self.rows)

    async def create(self, payload: Any) -> Result:
        """Insert one row (Insert dataclass or dict), then reload."""
        if self._disposed:
            return self._refused()
        row = payload.to_dict() if hasattr(payload, "to_dict") else dict(payload)
        try:
            created = await asyncio.to_thread(self.service.insert, self.table, row)
        except DataServiceError as e:
            return self._fail(f"creating {self.table} row", e)
        await self.load()
        return Ok(self._convert(created))

    async def mutate(self, row_id: str, fields: Any) -> Result:
        """Update exactly one row with the given field subset, then reload."""
        if self._disposed:
            return self._refused()
        data = fields.to_dict() if hasattr(fields, "to_dict") else dict(fields)
        try:
            await asyncio.to_thread(self.service.update, self.table, row_id, data)
        except DataServiceError as e:
            return self._fail(f"updating {self.table} row {row_id}", e)
        await self.load()
        return Ok(row_id)

    async def destroy(self, row_id: str) -> Result:
        """Delete one row, then reload."""
        if self._disposed:
            return self._refused()
        try:
            await asyncio.to_thread(self.service.delete, self.table, row_id)
        except DataServiceError as e:
            return self._fail(f"deleting {self.table} row {row_id}", e)
        await self.load()
        return Ok(row_id)

    def find(self, row_id: str) -> Optional[RowT]:
        for row in self.rows:
            if getattr(row, "id", None) == row_id:
                return row
        return None


class ProjectListSync(Synchronizer[Project]):
    """The signed-in user's projects, newest first."""
    table = PROJECTS
    filter_column = "user_id"
    order = Order("created_at", ascending=False)
    row_type = Project


class TaskBoardSync(Synchronizer[Task]):
    """A project's tasks in board order."""
    table = TASKS
    filter_column = "project_id"
    order = Order("position", ascending=True)
    row_type = Task


class NoteListSync(Synchronizer[Note]):
    """A project's notes, most recently touched first."""
    table = NOTES
    filter_column = "project_id"
    order = Order("updated_at", ascending=False)
    row_type = Note
