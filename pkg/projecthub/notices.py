"""
User-visible, dismissible notifications.

Synchronizers and views post a notice for every failed operation so the
front end can show it until the user dismisses it.
"""
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List


@dataclass
class Notice:
    id: int
    level: str       # "error" | "warning" | "info"
    message: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class Notices:
    """Ordered list of pending notices for one UI session."""

    def __init__(self):
        self._items: List[Notice] = []
        self._ids = itertools.count(1)

    def post(self, message: str, level: str = "error") -> Notice:
        notice = Notice(id=next(self._ids), level=level, message=message)
        self._items.append(notice)
        return notice

    def error(self, message: str) -> Notice:
        return self.post(message, "error")

    @property
    def items(self) -> List[Notice]:
        return list(self._items)

    def dismiss(self, notice_id: int) -> bool:
        before = len(self._items)
        self._items = [n for n in self._items if n.id != notice_id]
        return len(self._items) != before

    def clear(self) -> List[Notice]:
        """Dismiss everything; returns what was pending."""
        pending, self._items = self._items, []
        return pending

    def __len__(self) -> int:
        return len(self._items)
