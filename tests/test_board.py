"""
Tests for the Kanban board view-model.
"""
import asyncio

import pytest

from pkg.projecthub.board import (
    LEFT,
    RIGHT,
    KanbanBoard,
    can_move,
    neighbor_status,
)
from pkg.projecthub.notices import Notices
from pkg.projecthub.result import ErrorKind
from pkg.projecthub.schema import Task, TaskPriority, TaskStatus


class TestNeighbors:

    def test_adjacency(self):
        assert neighbor_status(TaskStatus.TODO, RIGHT) == TaskStatus.IN_PROGRESS
        assert neighbor_status(TaskStatus.IN_PROGRESS, LEFT) == TaskStatus.TODO
        assert neighbor_status(TaskStatus.IN_PROGRESS, RIGHT) == TaskStatus.DONE

    def test_edges(self):
        assert neighbor_status(TaskStatus.TODO, LEFT) is None
        assert neighbor_status(TaskStatus.DONE, RIGHT) is None
        done = Task(id="t", project_id="p", title="x", status=TaskStatus.DONE)
        assert can_move(done, LEFT)
        assert not can_move(done, RIGHT)

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            neighbor_status(TaskStatus.TODO, "up")


class TestKanbanBoard:

    @pytest.fixture(autouse=True)
    def _board(self, alice_store, project):
        self.notices = Notices()
        self.board = KanbanBoard(alice_store, project["id"], self.notices)
        self.store = alice_store
        asyncio.run(self.board.load())

    def _create(self, title, status=TaskStatus.TODO, **kwargs):
        self.board.open_create(status)
        result = asyncio.run(self.board.create_task(title, **kwargs))
        assert result.ok, result
        return result.value

    def test_empty_board(self):
        assert self.board.counts() == {s: 0 for s in TaskStatus}
        assert self.board.ordered() == []

    def test_create_goes_into_selected_column(self):
        task = self._create("Design", TaskStatus.IN_PROGRESS, priority=TaskPriority.HIGH,
                            deadline="2026-12-01")
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.priority == TaskPriority.HIGH
        assert task.deadline == "2026-12-01"
        assert [t.title for t in self.board.column(TaskStatus.IN_PROGRESS)] == ["Design"]
        assert not self.board.creating

    def test_positions_append_to_end(self):
        first = self._create("A")
        second = self._create("B", TaskStatus.DONE)
        third = self._create("C")
        assert (first.position, second.position, third.position) == (0, 1, 2)
        assert [t.title for t in self.board.column(TaskStatus.TODO)] == ["A", "C"]

    def test_ordered_is_column_by_column(self):
        self._create("Done one", TaskStatus.DONE)
        self._create("Todo one")
        self._create("Doing one", TaskStatus.IN_PROGRESS)
        assert [t.title for t in self.board.ordered()] == ["Todo one", "Doing one", "Done one"]

    def test_failed_create_keeps_form_open(self):
        self.board.project_id = "missing-project"
        self.board.open_create()
        result = asyncio.run(self.board.create_task("Orphan"))
        assert result.kind == ErrorKind.QUERY
        assert self.board.creating
        assert len(self.notices) == 1

    def test_move_right_then_left(self):
        task = self._create("Walk")
        asyncio.run(self.board.move_right(task.id))
        assert self.board.tasks.find(task.id).status == TaskStatus.IN_PROGRESS
        asyncio.run(self.board.move_right(task.id))
        assert self.board.tasks.find(task.id).status == TaskStatus.DONE
        asyncio.run(self.board.move_left(task.id))
        assert self.board.tasks.find(task.id).status == TaskStatus.IN_PROGRESS

    def test_move_past_edge(self):
        task = self._create("Stuck")
        result = asyncio.run(self.board.move_left(task.id))
        assert result.kind == ErrorKind.QUERY
        assert self.board.tasks.find(task.id).status == TaskStatus.TODO

    def test_move_task_jumps_columns(self):
        task = self._create("Leap")
        asyncio.run(self.board.move_task(task.id, TaskStatus.DONE))
        assert self.board.counts()[TaskStatus.DONE] == 1

    def test_move_unknown_task(self):
        result = asyncio.run(self.board.move("nope", RIGHT))
        assert result.kind == ErrorKind.NOT_FOUND

    def test_delete_task(self):
        task = self._create("Bye")
        result = asyncio.run(self.board.delete_task(task.id))
        assert result.ok
        assert self.board.ordered() == []

    def test_other_views_see_changes_only_after_reload(self):
        other = KanbanBoard(self.store, self.board.project_id)
        asyncio.run(other.load())
        self._create("Fresh")
        assert other.ordered() == []
        asyncio.run(other.load())
        assert [t.title for t in other.ordered()] == ["Fresh"]

    def test_dispose(self):
        self.board.dispose()
        result = asyncio.run(self.board.load())
        assert result.kind == ErrorKind.DISPOSED
