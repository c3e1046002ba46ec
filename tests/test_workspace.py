"""
Tests for the dashboard, project workspace and project settings.
"""
import asyncio
import time

import pytest

from pkg.projecthub.auth import AuthState
from pkg.projecthub.client import DataService
from pkg.projecthub.navigator import DashboardScreen, NavigationError, Navigator, Tab
from pkg.projecthub.notices import Notices
from pkg.projecthub.result import ErrorKind
from pkg.projecthub.schema import NoteInsert, ProjectInsert, TaskInsert, TaskStatus
from pkg.projecthub.workspace import DELETE_PROJECT_PROMPT, Dashboard, ProjectWorkspace


class SlowProjects(DataService):
    """Delegates to a store; the projects select lags behind the others."""

    def __init__(self, inner: DataService, delay: float = 0.2):
        self.inner = inner
        self.delay = delay

    def select(self, table, filters=(), order=None):
        if table == "projects":
            time.sleep(self.delay)
        return self.inner.select(table, filters, order)

    def insert(self, table, row):
        return self.inner.insert(table, row)

    def update(self, table, row_id, fields):
        self.inner.update(table, row_id, fields)

    def delete(self, table, row_id):
        self.inner.delete(table, row_id)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Dashboard
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestDashboard:

    @pytest.fixture(autouse=True)
    def _dashboard(self, alice_store, alice_session):
        self.store = alice_store
        self.notices = Notices()
        self.dashboard = Dashboard(alice_store, alice_session, self.notices)

    def test_empty(self):
        result = asyncio.run(self.dashboard.load())
        assert result.ok
        assert not self.dashboard.loading
        assert self.dashboard.stats == {"projects": 0, "active_tasks": 0, "notes": 0}

    def test_stats_count_active_tasks_and_notes(self, store, project):
        pid = project["id"]
        self.store.insert("tasks", TaskInsert(pid, "Open").to_dict())
        self.store.insert("tasks", TaskInsert(pid, "Doing", status=TaskStatus.IN_PROGRESS).to_dict())
        self.store.insert("tasks", TaskInsert(pid, "Closed", status=TaskStatus.DONE).to_dict())
        self.store.insert("notes", NoteInsert(pid).to_dict())
        # Someone else's rows never count
        bob = store.scoped("bob")
        other = bob.insert("projects", ProjectInsert("bob", "Bob's").to_dict())
        bob.insert("tasks", TaskInsert(other["id"], "Bob task").to_dict())

        asyncio.run(self.dashboard.load())
        assert [p.title for p in self.dashboard.projects.rows] == ["Apollo"]
        assert self.dashboard.stats == {"projects": 1, "active_tasks": 2, "notes": 1}

    def test_project_count_uses_fresh_list(self, alice_session, project):
        self.store.insert("projects", ProjectInsert("alice", "Gemini").to_dict())
        dashboard = Dashboard(SlowProjects(self.store), alice_session, self.notices)
        assert asyncio.run(dashboard.load()).ok
        assert len(dashboard.projects.rows) == 2
        assert dashboard.stats["projects"] == 2

    def test_create_project(self):
        asyncio.run(self.dashboard.load())
        self.dashboard.open_create()
        result = asyncio.run(self.dashboard.create_project("  Gemini ", "second"))
        assert result.ok
        assert result.value.title == "Gemini"
        assert result.value.user_id == "alice"
        assert not self.dashboard.creating
        assert self.dashboard.stats["projects"] == 1

    def test_create_requires_title(self):
        self.dashboard.open_create()
        result = asyncio.run(self.dashboard.create_project("   "))
        assert result.kind == ErrorKind.QUERY
        assert self.dashboard.creating

    def test_signed_out(self, alice_session):
        alice_session._set(AuthState.UNAUTHENTICATED)
        assert asyncio.run(self.dashboard.load()).kind == ErrorKind.QUERY
        assert asyncio.run(self.dashboard.create_project("X")).kind == ErrorKind.QUERY


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Workspace + settings
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestProjectWorkspace:

    @pytest.fixture(autouse=True)
    def _workspace(self, alice_store, alice_session, project):
        self.store = alice_store
        self.project = project
        self.nav = Navigator(alice_session)
        self.nav.open_project(project["id"])
        self.ws = ProjectWorkspace(alice_store, self.nav, Notices())

    def test_requires_selected_project(self, alice_store, alice_session):
        with pytest.raises(NavigationError):
            ProjectWorkspace(alice_store, Navigator(alice_session))

    def test_load(self):
        result = asyncio.run(self.ws.load())
        assert result.ok
        assert self.ws.project.title == "Apollo"
        assert not self.ws.loading
        assert self.ws.tab == Tab.BOARD

    def test_missing_project(self, alice_session):
        nav = Navigator(alice_session)
        nav.open_project("missing")
        ws = ProjectWorkspace(self.store, nav)
        result = asyncio.run(ws.load())
        assert result.kind == ErrorKind.NOT_FOUND
        assert result.message == "Project not found"
        assert ws.project is None
        with pytest.raises(NavigationError):
            ws.settings

    def test_open_tabs_load_rows(self):
        self.store.insert("tasks", TaskInsert(self.project["id"], "T").to_dict())
        self.store.insert("notes", NoteInsert(self.project["id"], "N").to_dict())

        asyncio.run(self.ws.open_tab(Tab.BOARD))
        assert [t.title for t in self.ws.board.ordered()] == ["T"]

        asyncio.run(self.ws.open_tab("notes"))
        assert self.ws.tab == Tab.NOTES
        assert [n.title for n in self.ws.notes.notes.rows] == ["N"]

        result = asyncio.run(self.ws.open_tab(Tab.SETTINGS))
        assert result.ok
        assert self.ws.settings.title == "Apollo"

    def test_settings_save_reloads_project(self):
        asyncio.run(self.ws.load())
        settings = self.ws.settings
        settings.edit_title("Apollo 11")
        settings.edit_description("moon")
        assert settings.has_changes

        result = asyncio.run(settings.save())
        assert result.ok
        assert not settings.has_changes
        assert self.ws.project.title == "Apollo 11"
        assert settings.project.description == "moon"

    def test_delete_needs_confirmation(self):
        asyncio.run(self.ws.load())
        prompts = []

        def decline(prompt):
            prompts.append(prompt)
            return False

        result = asyncio.run(self.ws.settings.delete(decline))
        assert result.kind == ErrorKind.CANCELLED
        assert prompts == [DELETE_PROJECT_PROMPT]
        assert self.store.select_one("projects", self.project["id"]) is not None

    def test_delete_cascades_and_returns_to_dashboard(self):
        pid = self.project["id"]
        self.store.insert("tasks", TaskInsert(pid, "T").to_dict())
        self.store.insert("notes", NoteInsert(pid).to_dict())
        asyncio.run(self.ws.open_tab(Tab.BOARD))
        asyncio.run(self.ws.open_tab(Tab.SETTINGS))

        result = asyncio.run(self.ws.settings.delete(lambda prompt: True))
        assert result.ok
        assert self.nav.screen == DashboardScreen()
        assert self.ws.closed
        assert self.ws.board.tasks.disposed
        assert self.store.select("tasks") == []
        assert self.store.select("notes") == []

    def test_back_disposes_tabs(self):
        asyncio.run(self.ws.open_tab(Tab.NOTES))
        self.ws.back()
        assert self.nav.screen == DashboardScreen()
        assert self.ws.notes.notes.disposed
        assert asyncio.run(self.ws.load()).kind == ErrorKind.DISPOSED
