"""
Item store backends.

The ordering engine needs two things from a store:
    list_items()                          current snapshot
    await persist(item_id, fields, silent) write column_id / position_key

SQLiteItemStore is the local backend; HttpItemStore (http_store.py)
talks to the task API.
"""
import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .schema import COLUMN_FIELD, POSITION_FIELD, Item

logger = logging.getLogger(__name__)

# Engine field -> items table column
_DB_COLUMNS = {COLUMN_FIELD: "status", POSITION_FIELD: "order_key"}


class StoreError(Exception):
    """Raised when the item store cannot read or write."""
    pass


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class ItemStore:
    """Base class: snapshot reads, field persistence and update notifications."""

    def __init__(self):
        self.subscribers: Dict[str, list] = {}  # event_type -> callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type ("item_updated")."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

    def list_items(self) -> List[Item]:
        raise NotImplementedError

    def update_fields(self, item_id: str, fields: Dict[str, Any]) -> Item:
        raise NotImplementedError

    async def persist(self, item_id: str, fields: Dict[str, Any], silent: bool = False) -> Item:
        """
        Persist fields for one item without blocking the event loop.

        silent=True suppresses the "item_updated" notification (used for
        drag moves, which would otherwise notify on every drop).
        """
        item = await asyncio.to_thread(self.update_fields, item_id, fields)
        if not silent:
            self._emit("item_updated", item=item, fields=dict(fields))
        return item


class SQLiteItemStore(ItemStore):
    """SQLite-backed item store."""

    def __init__(self, db_path: Optional[str] = None):
        super().__init__()
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskboard" / "items.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    order_key TEXT,
                    extra TEXT,  -- JSON object, opaque to the engine
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_status ON items(status, order_key)")
            conn.commit()

    def save(self, item: Item) -> bool:
        """Insert or replace an item."""
        now = _utc_now()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO items (id, title, status, order_key, extra, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title=excluded.title, status=excluded.status,
                        order_key=excluded.order_key, extra=excluded.extra,
                        updated_at=excluded.updated_at
                """, (
                    item.id,
                    item.title,
                    item.column_id,
                    item.position_key,
                    json.dumps(item.extra),
                    now,
                    now,
                ))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"Error saving item {item.id}: {e}")
            return False

    def get(self, item_id: str) -> Optional[Item]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def delete(self, item_id: str) -> bool:
        with _connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
            conn.commit()
            return cur.rowcount > 0

    def list_items(self) -> List[Item]:
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute("SELECT * FROM items ORDER BY status, order_key, id").fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list items: {e}") from e
        return [self._row_to_item(row) for row in rows]

    def update_fields(self, item_id: str, fields: Dict[str, Any]) -> Item:
        """Write column_id / position_key for one item. Raises StoreError."""
        unknown = set(fields) - set(_DB_COLUMNS)
        if unknown:
            raise StoreError(f"Unsupported fields for {item_id}: {sorted(unknown)}")
        if not fields:
            raise StoreError(f"No fields to update for {item_id}")

        assignments = ", ".join(f"{_DB_COLUMNS[name]} = ?" for name in fields)
        values = [fields[name] for name in fields] + [_utc_now(), item_id]
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute(
                    f"UPDATE items SET {assignments}, updated_at = ? WHERE id = ?", values,
                )
                conn.commit()
                if cur.rowcount == 0:
                    raise StoreError(f"Item {item_id} not found")
                row = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to update item {item_id}: {e}") from e
        return self._row_to_item(row)

    def _row_to_item(self, row: sqlite3.Row) -> Item:
        extra = row["extra"]
        try:
            extra = json.loads(extra) if extra else {}
        except (TypeError, ValueError):
            extra = {}
        return Item(
            id=row["id"],
            column_id=row["status"],
            position_key=row["order_key"] or None,
            title=row["title"] or "",
            extra=extra if isinstance(extra, dict) else {},
        )
