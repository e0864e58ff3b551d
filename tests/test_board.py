"""
Tests for Board wiring, drop rules and the snapshot poller.
"""
import asyncio
import logging

import pytest

from conftest import RecordingStore, make_items

from taskboard.board import Board
from taskboard.poller import SnapshotPoller
from taskboard.rules import allow_all, project_board_rule
from taskboard.schema import ColumnDefinition, DropPosition, Item


def board_ids(board):
    return {c.id: c.ids() for c in board.columns()}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestBoard:

    def setup_method(self):
        self.items = make_items([
            ("A", "todo", "a0"),
            ("B", "todo", "a1"),
            ("C", "todo", "a2"),
            ("D", "done", "n"),
        ])
        self.store = RecordingStore(self.items)
        self.columns = [
            ColumnDefinition("todo", "To do"),
            ColumnDefinition("in_progress", "In progress"),
            ColumnDefinition("done", "Done"),
        ]
        self.board = Board(self.columns, persist=self.store.persist)
        self.board.refresh(self.store.list_items())

    def test_columns_in_canonical_order(self):
        assert board_ids(self.board) == {
            "todo": ["A", "B", "C"],
            "in_progress": [],
            "done": ["D"],
        }

    def test_single_column_lookup(self):
        assert self.board.column("todo").ids() == ["A", "B", "C"]
        with pytest.raises(KeyError):
            self.board.column("nope")

    def test_same_column_reorder_scenario(self):
        result = self.board.move("A", "B", DropPosition.AFTER)
        assert "a1" < result.position_key < "a2"
        assert self.board.column("todo").ids() == ["B", "A", "C"]

        self.board.refresh(self.store.list_items())
        assert self.board.column("todo").ids() == ["B", "A", "C"]
        assert self.store.items["A"].position_key == result.position_key

    def test_cross_column_move_visible_before_refresh(self):
        async def scenario():
            self.board.move("B", "D", DropPosition.BEFORE)
            # persist not awaited yet
            assert self.store.items["B"].column_id == "todo"
            assert board_ids(self.board)["done"] == ["B", "D"]
            assert board_ids(self.board)["todo"] == ["A", "C"]
            await self.board.drain()

        asyncio.run(scenario())
        self.board.refresh(self.store.list_items())
        assert board_ids(self.board)["done"] == ["B", "D"]
        assert self.board.overlay.patch_for("B") is None

    def test_refresh_prunes_removed_items(self):
        self.board.move("A", "C", DropPosition.AFTER)
        assert self.board.overlay.get("todo") == ["B", "C", "A"]

        del self.store.items["C"]
        self.board.refresh(self.store.list_items())
        assert self.board.overlay.get("todo") == ["B", "A"]
        assert board_ids(self.board)["todo"] == ["B", "A"]

    def test_new_items_from_refresh_append_after_overlay(self):
        self.board.move("C", "A", DropPosition.BEFORE)
        self.store.items["E"] = Item(id="E", column_id="todo", position_key="0i")
        self.board.refresh(self.store.list_items())
        # E has no local intent: canonical order places it after the overlay items
        assert board_ids(self.board)["todo"] == ["C", "A", "B", "E"]

    def test_failed_persist_degrades_to_snapshot_after_refresh(self):
        failing = RecordingStore(self.items, fail=True)
        board = Board(self.columns, persist=failing.persist)
        board.refresh(failing.list_items())

        board.move("B", "D", DropPosition.AFTER)
        assert board_ids(board)["done"] == ["D", "B"]

        # Store never changed; the next snapshot is authoritative for B's column
        board.refresh(failing.list_items())
        assert board_ids(board)["done"] == ["D"]
        assert board_ids(board)["todo"] == ["A", "B", "C"]

    def test_item_filter_limits_visible_set(self):
        board = Board(
            self.columns,
            persist=self.store.persist,
            item_filter=lambda item: item.id != "B",
        )
        board.refresh(self.store.list_items())
        assert board_ids(board)["todo"] == ["A", "C"]
        assert board.move("A", "B") is None

    def test_drop_on_column(self):
        self.board.begin_drag("A")
        assert self.board.is_dragging
        result = self.board.drop_on_column("in_progress")
        assert not self.board.is_dragging
        assert result.target_column == "in_progress"
        assert board_ids(self.board)["in_progress"] == ["A"]

    def test_drop_on_unknown_column(self):
        self.board.begin_drag("A")
        assert self.board.drop_on_column("archive") is None
        assert not self.board.is_dragging
        assert self.store.calls == []

    def test_begin_drop_cycle(self):
        self.board.begin_drag("C")
        result = self.board.drop("A", DropPosition.BEFORE)
        assert result.item_id == "C"
        assert board_ids(self.board)["todo"] == ["C", "A", "B"]

    def test_cancel_drag(self):
        self.board.begin_drag("C")
        self.board.cancel_drag()
        assert self.board.drop("A", DropPosition.BEFORE) is None
        assert board_ids(self.board)["todo"] == ["A", "B", "C"]

    def test_str(self):
        assert str(self.board) == "To do: 3 items, In progress: 0 items, Done: 1 items"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rules
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestProjectBoardRule:

    def setup_method(self):
        self.accepts = project_board_rule(
            base_column_ids=["todo", "in_progress", "review", "done"],
            personal_column_ids=["todo", "in_progress", "done"],
        )
        self.project_item = Item(id="P", column_id="todo", extra={"projectId": "proj-1"})
        self.personal_item = Item(id="Q", column_id="todo")

    def test_project_item_stays_in_base_columns(self):
        assert self.accepts(self.project_item, "review")
        assert not self.accepts(self.project_item, "someday")

    def test_personal_item_limited_to_personal_statuses(self):
        assert self.accepts(self.personal_item, "done")
        assert not self.accepts(self.personal_item, "review")
        assert self.accepts(self.personal_item, "someday")

    def test_board_rejects_project_item_into_custom_column(self):
        items = [
            self.project_item,
            Item(id="S", column_id="someday", position_key="n"),
        ]
        store = RecordingStore(items)
        board = Board(
            [ColumnDefinition("todo"), ColumnDefinition("someday", custom=True)],
            persist=store.persist,
            accepts=self.accepts,
        )
        board.refresh(items)
        assert board.move("P", "S", DropPosition.BEFORE) is None
        assert board.overlay.snapshot() == {}
        assert store.calls == []


def test_allow_all():
    assert allow_all(Item(id="x", column_id="a"), "anything")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Poller
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BrokenStore(RecordingStore):
    def list_items(self):
        raise ConnectionError("server unreachable")


class TestSnapshotPoller:

    def setup_method(self):
        self.store = RecordingStore(make_items([("A", "todo", "a"), ("B", "todo", "b")]))
        self.board = Board([ColumnDefinition("todo")], persist=self.store.persist)

    def test_poll_once_refreshes_board(self):
        poller = SnapshotPoller(self.store, self.board, interval=1)
        assert asyncio.run(poller.poll_once())
        assert poller.connected
        assert self.board.column("todo").ids() == ["A", "B"]
        assert self.board.last_refresh is not None

    def test_skips_refresh_while_dragging(self):
        poller = SnapshotPoller(self.store, self.board, interval=1)
        self.board.begin_drag("A")
        assert not asyncio.run(poller.poll_once())
        assert self.store.list_calls == 0

    def test_can_refresh_during_drag_when_configured(self):
        poller = SnapshotPoller(self.store, self.board, interval=1, skip_while_dragging=False)
        self.board.begin_drag("A")
        assert asyncio.run(poller.poll_once())

    def test_drag_started_during_fetch_discards_snapshot(self):
        board = self.board

        class DragDuringFetch(RecordingStore):
            def list_items(self):
                board.begin_drag("A")
                return super().list_items()

        poller = SnapshotPoller(DragDuringFetch(self.store.items.values()), board, interval=1)
        assert not asyncio.run(poller.poll_once())
        assert board.last_refresh is None
        assert board.is_dragging

    def test_fetch_error_is_logged(self, caplog):
        poller = SnapshotPoller(BrokenStore(), self.board, interval=1)
        with caplog.at_level(logging.ERROR, logger="taskboard.poller"):
            assert not asyncio.run(poller.poll_once())
        assert "server unreachable" in caplog.text
        assert not poller.connected

    def test_run_until_stopped(self):
        poller = SnapshotPoller(self.store, self.board, interval=0.01)

        async def scenario():
            task = asyncio.create_task(poller.run())
            while self.store.list_calls < 3:
                await asyncio.sleep(0.005)
            poller.stop()
            await asyncio.wait_for(task, timeout=1)

        asyncio.run(scenario())
        assert self.store.list_calls >= 3

    def test_move_then_poll_settles(self):
        poller = SnapshotPoller(self.store, self.board, interval=1)

        async def scenario():
            await poller.poll_once()
            self.board.move("A", "B", DropPosition.AFTER)
            await self.board.drain()
            await poller.poll_once()

        asyncio.run(scenario())
        assert self.board.column("todo").ids() == ["B", "A"]
        assert self.board.overlay.patch_for("A") is None

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError, match="must be positive"):
            SnapshotPoller(self.store, self.board, interval=0)
