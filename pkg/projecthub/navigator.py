"""
Workspace navigator.

Tracks which top-level screen is shown and, inside a project workspace,
which tab. The selected project id is the only state shared across views.

    Dashboard --open_project(id)--> Workspace(id, board)
    Workspace --back()-----------> Dashboard
    Workspace --select_tab(t)----> Workspace(id, t)
    Workspace --project_deleted()-> Dashboard

Everything is gated on the auth session: while it is loading the view is
"loading", without a user it is "auth", and signing out resets to Dashboard.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from .auth import AuthSession, AuthState


class NavigationError(Exception):
    """Raised on a transition the current screen does not allow."""
    pass


class Tab(Enum):
    BOARD = "board"
    NOTES = "notes"
    SETTINGS = "settings"

    @classmethod
    def from_str(cls, value: str) -> "Tab":
        aliases = {"kanban": cls.BOARD, "knowledge": cls.NOTES}
        value = (value or "").strip().lower()
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            raise NavigationError(f"Unknown tab: {value}")


@dataclass(frozen=True)
class DashboardScreen:
    pass


@dataclass(frozen=True)
class WorkspaceScreen:
    project_id: str
    tab: Tab = Tab.BOARD


Screen = Union[DashboardScreen, WorkspaceScreen]

LOADING_VIEW = "loading"
AUTH_VIEW = "auth"


class Navigator:
    """Two-level screen state for one UI session."""

    def __init__(self, auth: AuthSession):
        self.auth = auth
        self.screen: Screen = DashboardScreen()
        self._listeners: List[Callable[[Screen], None]] = []
        auth.subscribe(self._on_auth_change)

    def subscribe(self, callback: Callable[[Screen], None]) -> None:
        self._listeners.append(callback)

    def _go(self, screen: Screen) -> Screen:
        self.screen = screen
        for callback in list(self._listeners):
            callback(screen)
        return screen

    def _on_auth_change(self, auth: AuthSession) -> None:
        if auth.state != AuthState.AUTHENTICATED and self.screen != DashboardScreen():
            self._go(DashboardScreen())

    @property
    def view(self) -> Union[str, Screen]:
        """What should be rendered right now."""
        if self.auth.state == AuthState.LOADING:
            return LOADING_VIEW
        if self.auth.state != AuthState.AUTHENTICATED:
            return AUTH_VIEW
        return self.screen

    @property
    def selected_project_id(self) -> Optional[str]:
        if isinstance(self.screen, WorkspaceScreen):
            return self.screen.project_id
        return None

    def _require_user(self) -> None:
        if not self.auth.is_authenticated:
            raise NavigationError("Sign in first")

    def open_project(self, project_id: str) -> Screen:
        self._require_user()
        if not isinstance(self.screen, DashboardScreen):
            raise NavigationError("Go back to the dashboard before opening another project")
        if not project_id:
            raise NavigationError("No project selected")
        return self._go(WorkspaceScreen(project_id=project_id, tab=Tab.BOARD))

    def back(self) -> Screen:
        if not isinstance(self.screen, WorkspaceScreen):
            raise NavigationError("Already on the dashboard")
        return self._go(DashboardScreen())

    def select_tab(self, tab: Union[Tab, str]) -> Screen:
        self._require_user()
        if not isinstance(self.screen, WorkspaceScreen):
            raise NavigationError("Open a project first")
        if not isinstance(tab, Tab):
            tab = Tab.from_str(tab)
        return self._go(WorkspaceScreen(project_id=self.screen.project_id, tab=tab))

    def project_deleted(self) -> Screen:
        """The open project is gone; same transition as back()."""
        return self.back()
