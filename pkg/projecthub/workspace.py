"""
Dashboard, project workspace and project settings view-models.

  Dashboard         - the signed-in user's projects + headline stats
  ProjectWorkspace  - one open project and its three tabs
  ProjectSettings   - title/description form, project deletion
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .auth import AuthSession
from .board import KanbanBoard
from .client import DataService, DataServiceError, neq
from .navigator import Navigator, NavigationError, Tab
from .notes import Confirm, NotesEditor
from .notices import Notices
from .result import Err, ErrorKind, Ok, Result
from .schema import NOTES, PROJECTS, TASKS, Project, ProjectInsert, ProjectUpdate, TaskStatus
from .sync import ProjectListSync, report_failure

logger = logging.getLogger(__name__)

DELETE_PROJECT_PROMPT = (
    "Are you sure you want to delete this project? "
    "All tasks and notes will be permanently deleted."
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Dashboard
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class Dashboard:
    """
    Project list for the signed-in user, plus counts of projects,
    active (not done) tasks and notes across them.

    The service is expected to be scoped to the user (row-level security on
    the hosted service, owner_id on the SQLite backend).
    """

    def __init__(self, service: DataService, auth: AuthSession,
                 notices: Optional[Notices] = None):
        self.service = service
        self.auth = auth
        self.notices = notices
        self.projects = ProjectListSync(service, notices)
        self.stats: Dict[str, int] = {"projects": 0, "active_tasks": 0, "notes": 0}
        self.loading = True
        self.creating = False

    async def load(self) -> Result:
        if not self.auth.is_authenticated:
            return Err(ErrorKind.QUERY, "not signed in")
        # the project count comes from the list just loaded
        projects_res = await self.projects.load(self.auth.user.id)
        stats_res = await self._load_stats()
        self.loading = False
        if not projects_res.ok:
            return projects_res
        return stats_res

    async def _load_stats(self) -> Result:
        try:
            active, notes = await asyncio.gather(
                asyncio.to_thread(self.service.select, TASKS, [neq("status", TaskStatus.DONE.value)]),
                asyncio.to_thread(self.service.select, NOTES),
            )
        except DataServiceError as e:
            return report_failure("loading dashboard stats", e, self.notices)
        self.stats = {
            "projects": len(self.projects.rows),
            "active_tasks": len(active),
            "notes": len(notes),
        }
        return Ok(self.stats)

    def open_create(self) -> None:
        self.creating = True

    def close_create(self) -> None:
        self.creating = False

    async def create_project(self, title: str, description: str = "") -> Result:
        """Create a project owned by the signed-in user; form stays open on failure."""
        if not self.auth.is_authenticated:
            return Err(ErrorKind.QUERY, "not signed in")
        title = (title or "").strip()
        if not title:
            return Err(ErrorKind.QUERY, "title is required")
        result = await self.projects.create(
            ProjectInsert(user_id=self.auth.user.id, title=title, description=description or "")
        )
        if result.ok:
            await self._load_stats()
            self.close_create()
        return result

    def dispose(self) -> None:
        self.projects.dispose()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ProjectSettings
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ProjectSettings:
    """Edit form for one project; deletion hands control back to the navigator."""

    def __init__(
        self,
        service: DataService,
        project: Project,
        on_update: Callable[[], Awaitable[Any]],
        on_delete: Callable[[], Any],
        notices: Optional[Notices] = None,
    ):
        self.service = service
        self.project = project
        self.on_update = on_update
        self.on_delete = on_delete
        self.notices = notices
        self.title = project.title
        self.description = project.description
        self.has_changes = False

    def edit_title(self, title: str) -> None:
        self.title = title
        self.has_changes = True

    def edit_description(self, description: str) -> None:
        self.description = description
        self.has_changes = True

    async def save(self) -> Result:
        update = ProjectUpdate(title=self.title, description=self.description)
        try:
            await asyncio.to_thread(self.service.update, PROJECTS, self.project.id, update.to_dict())
        except DataServiceError as e:
            return report_failure(f"updating project {self.project.id}", e, self.notices)
        self.has_changes = False
        await self.on_update()
        return Ok(self.project.id)

    async def delete(self, confirm: Optional[Confirm] = None) -> Result:
        """Delete the project (tasks and notes cascade) after confirmation."""
        if not (confirm and confirm(DELETE_PROJECT_PROMPT)):
            return Err(ErrorKind.CANCELLED, "delete cancelled")
        try:
            await asyncio.to_thread(self.service.delete, PROJECTS, self.project.id)
        except DataServiceError as e:
            return report_failure(f"deleting project {self.project.id}", e, self.notices)
        logger.info(f"Deleted project {self.project.id}")
        self.on_delete()
        return Ok(self.project.id)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ProjectWorkspace
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ProjectWorkspace:
    """
    The project selected in the navigator, with its board, notes and
    settings tabs. Tab views are created on first use and disposed when the
    workspace closes.
    """

    def __init__(self, service: DataService, navigator: Navigator,
                 notices: Optional[Notices] = None):
        project_id = navigator.selected_project_id
        if project_id is None:
            raise NavigationError("No project selected")
        self.service = service
        self.navigator = navigator
        self.notices = notices
        self.project_id = project_id
        self.project: Optional[Project] = None
        self.loading = True
        self.closed = False
        self._board: Optional[KanbanBoard] = None
        self._notes: Optional[NotesEditor] = None
        self._settings: Optional[ProjectSettings] = None

    async def load(self) -> Result:
        """(Re)load the project row; project stays None if it doesn't exist."""
        try:
            row = await asyncio.to_thread(self.service.select_one, PROJECTS, self.project_id)
        except DataServiceError as e:
            self.loading = False
            return report_failure(f"loading project {self.project_id}", e, self.notices)
        self.loading = False
        if self.closed:
            return Err(ErrorKind.DISPOSED, "workspace closed")
        self.project = Project.from_dict(row) if row else None
        if self.project is None:
            return Err(ErrorKind.NOT_FOUND, "Project not found")
        if self._settings is not None:
            self._settings.project = self.project
        return Ok(self.project)

    @property
    def tab(self) -> Optional[Tab]:
        screen = self.navigator.screen
        return getattr(screen, "tab", None)

    @property
    def board(self) -> KanbanBoard:
        if self._board is None:
            self._board = KanbanBoard(self.service, self.project_id, self.notices)
        return self._board

    @property
    def notes(self) -> NotesEditor:
        if self._notes is None:
            self._notes = NotesEditor(self.service, self.project_id, self.notices)
        return self._notes

    @property
    def settings(self) -> ProjectSettings:
        if self.project is None:
            raise NavigationError("Project not loaded")
        if self._settings is None:
            self._settings = ProjectSettings(
                self.service,
                self.project,
                on_update=self.load,
                on_delete=self._project_deleted,
                notices=self.notices,
            )
        return self._settings

    async def open_tab(self, tab) -> Result:
        """Switch tabs and load the tab's rows."""
        screen = self.navigator.select_tab(tab)
        if screen.tab == Tab.BOARD:
            return await self.board.load()
        if screen.tab == Tab.NOTES:
            return await self.notes.load()
        if self.project is None:
            return await self.load()
        return Ok(self.project)

    def _project_deleted(self) -> None:
        self.close()
        self.navigator.project_deleted()

    def back(self) -> None:
        self.close()
        self.navigator.back()

    def close(self) -> None:
        """Dispose every tab view so late responses are dropped."""
        self.closed = True
        for view in (self._board, self._notes):
            if view is not None:
                view.dispose()
