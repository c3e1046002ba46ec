"""
Notes editor view-model: a project's note list plus an edit buffer.

Edits go into the buffer (title/content) and are written only by an explicit
save(). Switching notes or creating one while the buffer is dirty asks the
caller's confirm callback first; declining leaves the buffer untouched.
"""
from typing import Callable, Optional, Union

from .client import DataService
from .notices import Notices
from .result import Err, ErrorKind, Result
from .schema import DEFAULT_NOTE_TITLE, Note, NoteInsert, NoteUpdate, utc_now
from .sync import NoteListSync

DISCARD_PROMPT = "You have unsaved changes. Discard them?"
DELETE_PROMPT = "Are you sure you want to delete this note?"

Confirm = Callable[[str], bool]


class NotesEditor:

    def __init__(self, service: DataService, project_id: str,
                 notices: Optional[Notices] = None):
        self.project_id = project_id
        self.notes = NoteListSync(service, notices)
        self.selected: Optional[Note] = None
        self.title = ""
        self.content = ""
        self.has_changes = False

    async def load(self) -> Result:
        return await self.notes.load(self.project_id)

    def dispose(self) -> None:
        self.notes.dispose()

    def _fill_buffer(self, note: Optional[Note]) -> None:
        self.selected = note
        self.title = note.title if note else ""
        self.content = note.content if note else ""
        self.has_changes = False

    def _may_discard(self, confirm: Optional[Confirm]) -> bool:
        if not self.has_changes:
            return True
        return bool(confirm and confirm(DISCARD_PROMPT))

    # ── Buffer edits ───────────────────────────

    def edit_title(self, title: str) -> None:
        self.title = title
        self.has_changes = True

    def edit_content(self, content: str) -> None:
        self.content = content
        self.has_changes = True

    # ── Actions ────────────────────────────────

    def select_note(self, note: Union[Note, str], confirm: Optional[Confirm] = None) -> bool:
        """Load a note into the buffer. Returns False if the switch was declined."""
        if isinstance(note, str):
            found = self.notes.find(note)
            if found is None:
                return False
            note = found
        if not self._may_discard(confirm):
            return False
        self._fill_buffer(note)
        return True

    async def create_note(self, confirm: Optional[Confirm] = None) -> Result:
        """Insert a placeholder note and select it."""
        if not self._may_discard(confirm):
            return Err(ErrorKind.CANCELLED, "unsaved changes kept")
        result = await self.notes.create(
            NoteInsert(project_id=self.project_id, title=DEFAULT_NOTE_TITLE, content="")
        )
        if result.ok:
            self._fill_buffer(result.value)
        return result

    async def save(self) -> Result:
        """Write the buffer to the selected note and refresh updated_at."""
        if self.selected is None:
            return Err(ErrorKind.NOT_FOUND, "no note selected")
        result = await self.notes.mutate(
            self.selected.id,
            NoteUpdate(title=self.title, content=self.content, updated_at=utc_now()),
        )
        if result.ok:
            self.has_changes = False
            fresh = self.notes.find(self.selected.id)
            if fresh is not None:
                self.selected = fresh
        return result

    async def delete(self, confirm: Optional[Confirm] = None) -> Result:
        """Delete the selected note after confirmation, then clear the buffer."""
        if self.selected is None:
            return Err(ErrorKind.NOT_FOUND, "no note selected")
        if not (confirm and confirm(DELETE_PROMPT)):
            return Err(ErrorKind.CANCELLED, "delete cancelled")
        result = await self.notes.destroy(self.selected.id)
        if result.ok:
            self._fill_buffer(None)
        return result
