#!/usr/bin/env python3
"""
ProjectHub Bot
──────────────
Telegram front end for ProjectHub. Every chat user gets a HubSession: an
auth session, a navigator, a notice list and the views that are open.
Each command acts on the current view and replies with the re-rendered view.

Setup:
    export PROJECTHUB_BOT_TOKEN=your_token_here
    python hub_bot.py

Commands (fields separated by `|`):
    /signup <email> | <password>      /login <email> | <password>   /logout
    /projects                         /newproject <title> | [description]
    /open <number>                    /back
    /board   /newtask <title> | [description] | [priority] | [deadline] | [status]
    /move <number> | <left|right|todo|in-progress|done>   /deltask <number>
    /notes   /newnote   /note <number>   /title <text>   /content <text>
    /savenote   /delnote
    /settings   /rename <title>   /describe <text>   /saveproject   /deleteproject
    /dismiss <id|all>   /confirm   /cancel   /help
"""

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

from telegram import Update
from telegram.ext import CommandHandler, ContextTypes

# Allow running from project root or bots/ directory
sys.path.insert(0, str(Path(__file__).parent))
sys.path.insert(0, str(Path(__file__).parent.parent))
from bot_base import BotBase, ValidationError
from pkg.projecthub.auth import AuthError, AuthProvider, AuthSession
from pkg.projecthub.client import DataService
from pkg.projecthub.config import HubConfig, build_auth_provider, build_data_service
from pkg.projecthub.navigator import DashboardScreen, NavigationError, Navigator, Tab
from pkg.projecthub.notes import DELETE_PROMPT, DISCARD_PROMPT, NotesEditor
from pkg.projecthub.notices import Notices
from pkg.projecthub.result import ErrorKind, Result
from pkg.projecthub.schema import TaskPriority, TaskStatus
from pkg.projecthub.telegram_view import (
    item_at,
    render_board,
    render_dashboard,
    render_notes,
    render_notices,
    render_settings,
)
from pkg.projecthub.workspace import DELETE_PROJECT_PROMPT, Dashboard, ProjectWorkspace

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "config" / "projecthub.yaml"

SIGN_IN_HINT = (
    "🔒 Sign in first:\n"
    "/login <email> | <password>\n"
    "/signup <email> | <password>"
)

PRIORITIES = [p.value for p in TaskPriority]
STATUSES = [s.value for s in TaskStatus]


def _yes(prompt: str) -> bool:
    """Confirm callback for actions the user already confirmed."""
    return True


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Command schemas
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

REQUIRED = {"required": True}
NUMBER = {"type": "integer", "required": True, "min": 1}
EMAIL = {"required": True, "pattern": r"[^@\s|]+@[^@\s|]+\.[^@\s|]+"}

COMMANDS = {
    "signup": {
        "description": "Create an account and sign in",
        "params": {"email": EMAIL, "password": REQUIRED},
        "login_required": False,
        "audit": True,
    },
    "login": {
        "description": "Sign in",
        "params": {"email": EMAIL, "password": REQUIRED},
        "login_required": False,
    },
    "logout": {"description": "Sign out", "params": {}},
    "projects": {"description": "Show the dashboard", "params": {}},
    "newproject": {
        "description": "Create a project",
        "params": {"title": REQUIRED, "description": {}},
        "audit": True,
    },
    "open": {
        "description": "Open a project by dashboard number",
        "params": {"project": NUMBER},
    },
    "back": {"description": "Close the project and return to the dashboard", "params": {}},
    "board": {"description": "Show the kanban board", "params": {}},
    "newtask": {
        "description": "Add a task to the board",
        "params": {
            "title": REQUIRED,
            "description": {},
            "priority": {"allowed": PRIORITIES, "default": "medium"},
            "deadline": {"type": "date"},
            "status": {"allowed": STATUSES, "default": "todo"},
        },
        "audit": True,
    },
    "move": {
        "description": "Move a task left/right or to a column",
        "params": {
            "task": NUMBER,
            "to": {"required": True, "allowed": ["left", "right"] + STATUSES},
        },
        "audit": True,
    },
    "deltask": {
        "description": "Delete a task",
        "params": {"task": NUMBER},
        "audit": True,
    },
    "notes": {"description": "Show the project's notes", "params": {}},
    "newnote": {"description": "Create a note and select it", "params": {}, "audit": True},
    "note": {"description": "Select a note for editing", "params": {"note": NUMBER}},
    "title": {"description": "Set the selected note's title", "params": {"title": REQUIRED}},
    "content": {"description": "Set the selected note's content", "params": {"content": {}}},
    "savenote": {"description": "Save the selected note", "params": {}, "audit": True},
    "delnote": {"description": "Delete the selected note", "params": {}, "audit": True},
    "settings": {"description": "Show project settings", "params": {}},
    "rename": {"description": "Edit the project title", "params": {"title": REQUIRED}},
    "describe": {"description": "Edit the project description", "params": {"description": {}}},
    "saveproject": {"description": "Save project settings", "params": {}, "audit": True},
    "deleteproject": {"description": "Delete the project", "params": {}, "audit": True},
    "dismiss": {"description": "Dismiss a notice (id or all)", "params": {"notice": REQUIRED}},
}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HubSession — per-user UI state
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class HubSession:
    """
    UI state for one Telegram user.

    Views are built on demand with a data service acting as the signed-in
    user, and thrown away on every auth change.
    """

    def __init__(self, hub_cfg: HubConfig, provider: AuthProvider):
        self.hub_cfg = hub_cfg
        self.auth = AuthSession(provider)
        self.navigator = Navigator(self.auth)
        self.notices = Notices()
        self.dashboard: Optional[Dashboard] = None
        self.workspace: Optional[ProjectWorkspace] = None
        self.auth.subscribe(self._on_auth_change)
        self.navigator.subscribe(self._on_screen_change)

    def _on_auth_change(self, auth: AuthSession) -> None:
        self.close_views()

    def _on_screen_change(self, screen) -> None:
        if isinstance(screen, DashboardScreen) and self.workspace is not None:
            self.workspace.close()
            self.workspace = None

    def close_views(self) -> None:
        if self.workspace is not None:
            self.workspace.close()
            self.workspace = None
        if self.dashboard is not None:
            self.dashboard.dispose()
            self.dashboard = None

    def service(self) -> DataService:
        return build_data_service(self.hub_cfg, self.auth)

    async def show_dashboard(self) -> Result:
        """Close any open project and (re)load the dashboard."""
        if self.workspace is not None:
            self.workspace.back()
        if self.dashboard is None:
            self.dashboard = Dashboard(self.service(), self.auth, self.notices)
        return await self.dashboard.load()

    async def open_project(self, project_id: str) -> Result:
        if self.workspace is not None:
            self.workspace.back()
        self.navigator.open_project(project_id)
        self.workspace = ProjectWorkspace(self.service(), self.navigator, self.notices)
        result = await self.workspace.load()
        if not result.ok:
            self.workspace.back()
            return result
        return await self.workspace.open_tab(Tab.BOARD)

    def require_workspace(self) -> ProjectWorkspace:
        if self.workspace is None:
            raise NavigationError("Open a project first: /projects, then /open <number>")
        return self.workspace

    async def ensure_tab(self, tab: Tab) -> ProjectWorkspace:
        """Switch to `tab` (loading it) unless it is already showing."""
        ws = self.require_workspace()
        loaded = {
            Tab.BOARD: lambda: ws.board.tasks.loaded,
            Tab.NOTES: lambda: ws.notes.notes.loaded,
            Tab.SETTINGS: lambda: ws.project is not None,
        }[tab]
        if ws.tab != tab or not loaded():
            await ws.open_tab(tab)
        return ws


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HubBot
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class HubBot(BotBase):

    commands = COMMANDS

    def __init__(self, config_path: Optional[str] = None):
        super().__init__(config_path or str(CONFIG_PATH), "hub_bot")
        self.provider = build_auth_provider(self.cfg.hub)
        self.sessions: Dict[int, HubSession] = {}

    def register_handlers(self, app):
        super().register_handlers(app)  # registers /help, /confirm, /cancel
        for name in self.commands:
            app.add_handler(CommandHandler(name, self.dispatch))

    async def session_for(self, user_id: int) -> HubSession:
        session = self.sessions.get(user_id)
        if session is None:
            session = HubSession(self.cfg.hub, self.provider)
            await session.auth.initialize()
            self.sessions[user_id] = session
        return session

    # ──────────────────────────────────────────
    # Dispatch
    # ──────────────────────────────────────────

    async def dispatch(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Authorize, parse and validate a command, run it, reply with the view."""
        if not self._is_authorized(update):
            await self._reject_unauthorized(update)
            return

        user = update.effective_user
        text = update.message.text or ""
        name = text.split(None, 1)[0].lstrip("/").split("@")[0].lower()
        cmd_cfg = self.commands.get(name)
        if cmd_cfg is None:
            await update.message.reply_text(f"❌ Unknown command: {name}")
            return

        # A new command abandons whatever was waiting for /confirm
        if self._pending_confirms.pop(user.id, None):
            logger.info(f"Dropped pending confirmation for user {user.id}")

        schema = cmd_cfg.get("params", {})
        try:
            params = self.validator.validate(self._parse_command_args(text, schema), schema)
        except ValidationError as e:
            await update.message.reply_text(f"⚠️ {e}\n\nSee /help for usage.")
            return

        session = await self.session_for(user.id)
        if cmd_cfg.get("login_required", True) and not session.auth.is_authenticated:
            await update.message.reply_text(SIGN_IN_HINT)
            return

        if cmd_cfg.get("audit"):
            self.audit.log(
                user_id=user.id,
                username=self._username(update),
                bot=self.cfg.bot_name,
                command=name,
                status="submitted",
                params={k: v for k, v in params.items() if k != "password"} or None,
                account=session.auth.user.email if session.auth.user else None,
            )

        handler = getattr(self, f"cmd_{name}")
        try:
            reply = await handler(update, session, params)
        except (NavigationError, AuthError) as e:
            reply = f"⚠️ {e}"

        if reply:
            await self.send_reply(update, reply)

    async def send_reply(self, update: Update, text: str):
        """Append the user's open notices to every reply."""
        session = self.sessions.get(update.effective_user.id)
        footer = render_notices(session.notices) if session else ""
        if footer:
            text = f"{text}\n\n{footer}"
        await super().send_reply(update, text)

    def _outcome(self, result: Result, render: Callable[[], str], done: str = "") -> str:
        if result.ok:
            return f"{done}\n\n{render()}" if done else render()
        if result.kind == ErrorKind.CANCELLED:
            return f"↩️ {result.message}"
        return f"❌ {result.message}"

    # ──────────────────────────────────────────
    # Auth
    # ──────────────────────────────────────────

    async def cmd_signup(self, update, session: HubSession, params) -> str:
        user = await session.auth.sign_up(params["email"], params["password"])
        result = await session.show_dashboard()
        return self._outcome(
            result, lambda: render_dashboard(session.dashboard), f"👋 Welcome, {user.email}!"
        )

    async def cmd_login(self, update, session: HubSession, params) -> str:
        user = await session.auth.sign_in(params["email"], params["password"])
        result = await session.show_dashboard()
        return self._outcome(
            result, lambda: render_dashboard(session.dashboard), f"👋 Signed in as {user.email}"
        )

    async def cmd_logout(self, update, session: HubSession, params) -> str:
        await session.auth.sign_out()
        return "👋 Signed out."

    # ──────────────────────────────────────────
    # Dashboard
    # ──────────────────────────────────────────

    async def cmd_projects(self, update, session: HubSession, params) -> str:
        result = await session.show_dashboard()
        return self._outcome(result, lambda: render_dashboard(session.dashboard))

    async def cmd_newproject(self, update, session: HubSession, params) -> str:
        if session.dashboard is None or session.workspace is not None:
            await session.show_dashboard()
        dashboard = session.dashboard
        dashboard.open_create()
        result = await dashboard.create_project(params["title"], params.get("description", ""))
        return self._outcome(result, lambda: render_dashboard(dashboard), "✅ Project created")

    async def cmd_open(self, update, session: HubSession, params) -> str:
        if session.dashboard is None or not session.dashboard.projects.loaded:
            await session.show_dashboard()
        project = item_at(session.dashboard.projects.rows, params["project"])
        if project is None:
            return f"❌ No project {params['project']} on the dashboard"
        result = await session.open_project(project.id)
        if not result.ok:
            return self._outcome(result, str)
        ws = session.workspace
        return render_board(ws.board, ws.project)

    async def cmd_back(self, update, session: HubSession, params) -> str:
        session.require_workspace()
        return await self.cmd_projects(update, session, params)

    # ──────────────────────────────────────────
    # Board
    # ──────────────────────────────────────────

    async def cmd_board(self, update, session: HubSession, params) -> str:
        ws = session.require_workspace()
        result = await ws.open_tab(Tab.BOARD)
        return self._outcome(result, lambda: render_board(ws.board, ws.project))

    async def cmd_newtask(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.BOARD)
        board = ws.board
        board.open_create(TaskStatus.from_str(params["status"]))
        result = await board.create_task(
            params["title"],
            description=params.get("description", ""),
            priority=TaskPriority.from_str(params["priority"]),
            deadline=params.get("deadline"),
        )
        return self._outcome(result, lambda: render_board(board, ws.project), "✅ Task created")

    async def cmd_move(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.BOARD)
        board = ws.board
        task = item_at(board.ordered(), params["task"])
        if task is None:
            return f"❌ No task {params['task']} on the board"
        target = params["to"]
        if target in ("left", "right"):
            result = await board.move(task.id, target)
        else:
            result = await board.move_task(task.id, TaskStatus.from_str(target))
        return self._outcome(result, lambda: render_board(board, ws.project))

    async def cmd_deltask(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.BOARD)
        board = ws.board
        task = item_at(board.ordered(), params["task"])
        if task is None:
            return f"❌ No task {params['task']} on the board"
        result = await board.delete_task(task.id)
        return self._outcome(result, lambda: render_board(board, ws.project), "🗑 Task deleted")

    # ──────────────────────────────────────────
    # Notes
    # ──────────────────────────────────────────

    async def cmd_notes(self, update, session: HubSession, params) -> str:
        ws = session.require_workspace()
        result = await ws.open_tab(Tab.NOTES)
        return self._outcome(result, lambda: render_notes(ws.notes, ws.project))

    async def _create_note(self, ws: ProjectWorkspace) -> str:
        result = await ws.notes.create_note(confirm=_yes)
        return self._outcome(result, lambda: render_notes(ws.notes, ws.project))

    async def cmd_newnote(self, update, session: HubSession, params) -> Optional[str]:
        ws = await session.ensure_tab(Tab.NOTES)
        if ws.notes.has_changes:
            await self.request_confirmation(
                update, "newnote", DISCARD_PROMPT, lambda: self._create_note(ws)
            )
            return None
        return await self._create_note(ws)

    async def _select_note(self, ws: ProjectWorkspace, note_id: str) -> str:
        ws.notes.select_note(note_id, confirm=_yes)
        return render_notes(ws.notes, ws.project)

    async def cmd_note(self, update, session: HubSession, params) -> Optional[str]:
        ws = await session.ensure_tab(Tab.NOTES)
        note = item_at(ws.notes.notes.rows, params["note"])
        if note is None:
            return f"❌ No note {params['note']}"
        if ws.notes.has_changes:
            await self.request_confirmation(
                update, "note", DISCARD_PROMPT, lambda: self._select_note(ws, note.id)
            )
            return None
        return await self._select_note(ws, note.id)

    def _selected_editor(self, ws: ProjectWorkspace) -> NotesEditor:
        if ws.notes.selected is None:
            raise NavigationError("Select a note first: /note <number>")
        return ws.notes

    async def cmd_title(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.NOTES)
        self._selected_editor(ws).edit_title(params["title"])
        return render_notes(ws.notes, ws.project)

    async def cmd_content(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.NOTES)
        self._selected_editor(ws).edit_content(params.get("content", ""))
        return render_notes(ws.notes, ws.project)

    async def cmd_savenote(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.NOTES)
        result = await self._selected_editor(ws).save()
        return self._outcome(result, lambda: render_notes(ws.notes, ws.project), "💾 Note saved")

    async def _delete_note(self, ws: ProjectWorkspace) -> str:
        result = await ws.notes.delete(confirm=_yes)
        return self._outcome(result, lambda: render_notes(ws.notes, ws.project), "🗑 Note deleted")

    async def cmd_delnote(self, update, session: HubSession, params) -> None:
        ws = await session.ensure_tab(Tab.NOTES)
        self._selected_editor(ws)
        await self.request_confirmation(
            update, "delnote", DELETE_PROMPT, lambda: self._delete_note(ws)
        )

    # ──────────────────────────────────────────
    # Settings
    # ──────────────────────────────────────────

    async def cmd_settings(self, update, session: HubSession, params) -> str:
        ws = session.require_workspace()
        result = await ws.open_tab(Tab.SETTINGS)
        if not result.ok:
            return self._outcome(result, str)
        return render_settings(ws.settings)

    async def cmd_rename(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.SETTINGS)
        ws.settings.edit_title(params["title"])
        return render_settings(ws.settings)

    async def cmd_describe(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.SETTINGS)
        ws.settings.edit_description(params.get("description", ""))
        return render_settings(ws.settings)

    async def cmd_saveproject(self, update, session: HubSession, params) -> str:
        ws = await session.ensure_tab(Tab.SETTINGS)
        result = await ws.settings.save()
        return self._outcome(result, lambda: render_settings(ws.settings), "💾 Project saved")

    async def _delete_project(self, session: HubSession, ws: ProjectWorkspace) -> str:
        result = await ws.settings.delete(confirm=_yes)
        if not result.ok:
            return self._outcome(result, str)
        dash = await session.show_dashboard()
        return self._outcome(dash, lambda: render_dashboard(session.dashboard), "🗑 Project deleted")

    async def cmd_deleteproject(self, update, session: HubSession, params) -> Optional[str]:
        ws = await session.ensure_tab(Tab.SETTINGS)
        if ws.project is None:
            return self._outcome(await ws.load(), str)
        await self.request_confirmation(
            update, "deleteproject", DELETE_PROJECT_PROMPT,
            lambda: self._delete_project(session, ws),
        )

    # ──────────────────────────────────────────
    # Notices
    # ──────────────────────────────────────────

    async def cmd_dismiss(self, update, session: HubSession, params) -> str:
        ref = params["notice"].strip().lower()
        if ref == "all":
            cleared = session.notices.clear()
            return f"🧹 Dismissed {len(cleared)} notice(s)."
        if not ref.isdigit() or not session.notices.dismiss(int(ref)):
            return f"❌ No notice {ref}"
        return f"🧹 Dismissed notice {ref}."


if __name__ == "__main__":
    HubBot(os.environ.get("PROJECTHUB_CONFIG")).run()
