"""
Plain-text rendering of the views for Telegram.

Lists are numbered from 1 in display order; the bot resolves those numbers
back to row ids with the *_at() helpers below.
"""
from typing import List, Optional, Sequence, TypeVar

from .board import EMPTY_COLUMN_MESSAGE, KanbanBoard
from .notes import NotesEditor
from .notices import Notices
from .schema import STATUS_ORDER, Project, Task, TaskPriority, TaskStatus
from .workspace import Dashboard, ProjectSettings

T = TypeVar("T")

STATUS_EMOJI = {
    TaskStatus.TODO: "📝",
    TaskStatus.IN_PROGRESS: "🚀",
    TaskStatus.DONE: "✅",
}

PRIORITY_EMOJI = {
    TaskPriority.LOW: "🟢",
    TaskPriority.MEDIUM: "🟡",
    TaskPriority.HIGH: "🔴",
}

NOTICE_EMOJI = {"error": "❌", "warning": "⚠️", "info": "ℹ️"}


def item_at(items: Sequence[T], number: int) -> Optional[T]:
    """Resolve a 1-based list number (as shown in the rendered list)."""
    if 1 <= number <= len(items):
        return items[number - 1]
    return None


def short_date(iso: Optional[str]) -> str:
    return (iso or "")[:10]


def render_dashboard(dashboard: Dashboard) -> str:
    stats = dashboard.stats
    lines = [
        "🏠 Dashboard",
        f"Projects: {stats['projects']}  ·  Active tasks: {stats['active_tasks']}"
        f"  ·  Notes: {stats['notes']}",
        "",
    ]
    projects: List[Project] = dashboard.projects.rows
    if not projects:
        lines.append("No projects yet. Create one with /newproject <title> | <description>")
        return "\n".join(lines)
    for i, project in enumerate(projects, 1):
        lines.append(f"{i}. 📁 {project.title}  ({short_date(project.created_at)})")
        if project.description:
            lines.append(f"    {project.description}")
    lines.append("")
    lines.append("Open one with /open <number>")
    return "\n".join(lines)


def render_task(number: int, task: Task) -> str:
    line = f"  {number}. {PRIORITY_EMOJI[task.priority]} {task.title}"
    if task.deadline:
        line += f"  ⏰ {short_date(task.deadline)}"
    return line


def render_board(board: KanbanBoard, project: Optional[Project] = None) -> str:
    header = f"📋 {project.title} · Board" if project else "📋 Board"
    lines = [header]
    number = 0
    columns = board.columns()
    for status in STATUS_ORDER:
        tasks = columns[status]
        lines.append("")
        lines.append(f"{STATUS_EMOJI[status]} {status.title} ({len(tasks)})")
        if not tasks:
            lines.append(f"  {EMPTY_COLUMN_MESSAGE}")
        for task in tasks:
            number += 1
            lines.append(render_task(number, task))
    return "\n".join(lines)


def render_notes(editor: NotesEditor, project: Optional[Project] = None) -> str:
    header = f"🗒 {project.title} · Notes" if project else "🗒 Notes"
    lines = [header, ""]
    notes = editor.notes.rows
    if not notes:
        lines.append("No notes yet. Create one with /newnote")
    for i, note in enumerate(notes, 1):
        marker = "▶" if editor.selected and editor.selected.id == note.id else " "
        lines.append(f"{marker} {i}. {note.title}  ({short_date(note.updated_at)})")

    if editor.selected is not None:
        lines.append("")
        flag = "  ✏️ unsaved changes" if editor.has_changes else ""
        lines.append(f"── {editor.title or '(no title)'}{flag}")
        lines.append(editor.content or "(empty)")
    return "\n".join(lines)


def render_settings(settings: ProjectSettings) -> str:
    lines = [
        f"⚙️ {settings.project.title} · Settings",
        "",
        f"Title: {settings.title}",
        f"Description: {settings.description or '(none)'}",
        f"Created: {short_date(settings.project.created_at)}",
    ]
    if settings.has_changes:
        lines.append("")
        lines.append("✏️ Unsaved changes. /saveproject to save.")
    return "\n".join(lines)


def render_notices(notices: Notices) -> str:
    """Pending notices, or an empty string when there are none."""
    if not len(notices):
        return ""
    lines = []
    for notice in notices.items:
        emoji = NOTICE_EMOJI.get(notice.level, "❓")
        lines.append(f"{emoji} [{notice.id}] {notice.message}")
    lines.append("Dismiss with /dismiss <id> or /dismiss all")
    return "\n".join(lines)
