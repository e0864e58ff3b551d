"""
Command-line access to a board.

Usage:
    python -m taskboard show
    python -m taskboard add "Write release notes" --column todo
    python -m taskboard move task-1 task-2 --before
    python -m taskboard column-drop task-1 done

The store is SQLite (--db / db_path) unless the config sets api_url.
"""
import argparse
import logging
import sys
import time
import uuid
from typing import List, Optional

from . import order_key
from .board import Board
from .config import BoardConfig, ConfigError
from .http_store import HttpItemStore
from .reconcile import canonical_order
from .rules import project_board_rule
from .schema import DropPosition, Item
from .store import ItemStore, SQLiteItemStore, StoreError

logger = logging.getLogger(__name__)


def make_item_id() -> str:
    """Sortable unique item ID (ms timestamp + random hex)."""
    return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def build_store(cfg: BoardConfig) -> ItemStore:
    if cfg.api_url:
        return HttpItemStore(cfg.api_url, token=cfg.api_token)
    return SQLiteItemStore(cfg.db_path)


def build_board(cfg: BoardConfig, store: ItemStore, errors: Optional[list] = None) -> Board:
    def on_error(item_id, fields, exc):
        if errors is not None:
            errors.append(exc)

    return Board(
        cfg.columns,
        persist=store.persist,
        accepts=project_board_rule(cfg.base_column_ids, cfg.personal_columns),
        on_persist_error=on_error,
    )


def format_board(board: Board) -> str:
    lines: List[str] = []
    for column in board.columns():
        lines.append(f"{column.definition.title} ({len(column.items)})")
        if not column.items:
            lines.append("  (empty)")
        for item in column.items:
            key = item.position_key or "-"
            lines.append(f"  {item.id}  [{key}]  {item.title}")
    return "\n".join(lines)


def cmd_show(cfg: BoardConfig, store: ItemStore, args) -> int:
    board = build_board(cfg, store)
    board.refresh(store.list_items())
    print(format_board(board))
    return 0


def cmd_add(cfg: BoardConfig, store: ItemStore, args) -> int:
    if args.column not in [c.id for c in cfg.columns]:
        print(f"Unknown column: {args.column}", file=sys.stderr)
        return 1
    if not isinstance(store, SQLiteItemStore):
        print("add is only supported with the SQLite store", file=sys.stderr)
        return 1
    column = canonical_order(store.list_items(), args.column)
    last = order_key.normalize_key(column[-1].position_key) if column else None
    item = Item(
        id=make_item_id(),
        column_id=args.column,
        position_key=order_key.generate(last or None, None),
        title=args.title,
    )
    if not store.save(item):
        return 1
    print(f"Added {item.id} to {args.column} [{item.position_key}]")
    return 0


def _run_move(cfg: BoardConfig, store: ItemStore, args, drop) -> int:
    errors: list = []
    board = build_board(cfg, store, errors)
    board.refresh(store.list_items())
    result = drop(board)
    if result is None:
        print("Invalid drop: nothing changed", file=sys.stderr)
        return 1
    if errors:
        print(f"Move not saved: {errors[0]}", file=sys.stderr)
        return 1
    print(f"Moved {result.item_id} to {result.target_column} [{result.position_key}]")
    print(format_board(board))
    return 0


def cmd_move(cfg: BoardConfig, store: ItemStore, args) -> int:
    position = DropPosition.BEFORE if args.before else DropPosition.AFTER
    return _run_move(cfg, store, args, lambda b: b.move(args.item_id, args.target_id, position))


def cmd_column_drop(cfg: BoardConfig, store: ItemStore, args) -> int:
    def drop(board: Board):
        board.begin_drag(args.item_id)
        return board.drop_on_column(args.column_id)
    return _run_move(cfg, store, args, drop)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="taskboard", description="Ordered task board")
    ap.add_argument("--config", default=None, help="Path to config.yaml")
    ap.add_argument("--db", default=None, help="SQLite database path (overrides config)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("show", help="Print every column in display order")

    p_add = sub.add_parser("add", help="Append a new item to a column")
    p_add.add_argument("title")
    p_add.add_argument("--column", default="todo")

    p_move = sub.add_parser("move", help="Move an item next to another item")
    p_move.add_argument("item_id")
    p_move.add_argument("target_id")
    side = p_move.add_mutually_exclusive_group()
    side.add_argument("--before", action="store_true")
    side.add_argument("--after", action="store_true", help="(default)")

    p_drop = sub.add_parser("column-drop", help="Drop an item at the end of a column")
    p_drop.add_argument("item_id")
    p_drop.add_argument("column_id")
    return ap


COMMANDS = {
    "show": cmd_show,
    "add": cmd_add,
    "move": cmd_move,
    "column-drop": cmd_column_drop,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    try:
        cfg = BoardConfig.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1
    if args.db:
        cfg.db_path = args.db
        cfg.api_url = None

    try:
        store = build_store(cfg)
        return COMMANDS[args.command](cfg, store, args)
    except StoreError as e:
        print(f"Store error: {e}", file=sys.stderr)
        return 1
