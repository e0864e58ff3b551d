"""
Board item schema and drag-drop types.

An Item is the only thing the ordering engine needs from the task store:
an id, the column it sits in ("status" in the app), and its position key.
Everything else rides along in `extra` and is opaque to the engine.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, List

# Persistable fields the engine writes
COLUMN_FIELD = "column_id"
POSITION_FIELD = "position_key"


class DropPosition(Enum):
    """Where the dragged item lands relative to the target item."""
    BEFORE = "before"
    AFTER = "after"

    @classmethod
    def from_str(cls, value: str) -> "DropPosition":
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid drop position: {value!r} (expected 'before' or 'after')")


class DragState(Enum):
    """Lifecycle of a single drag gesture."""
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED_VALID = "dropped-valid"
    DROPPED_INVALID = "dropped-invalid"


@dataclass
class Item:
    """One card on a board."""

    id: str
    column_id: str
    position_key: Optional[str] = None
    title: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    def with_fields(self, fields: Dict[str, Any]) -> "Item":
        """Copy of this item with persisted fields (column_id / position_key) applied."""
        updates = {k: v for k, v in fields.items() if k in (COLUMN_FIELD, POSITION_FIELD)}
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the app's wire names (status / orderKey)."""
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "status": self.column_id,
            "orderKey": self.position_key,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        """
        Deserialize from an app task record.

        Accepts both the wire names (status, orderKey) and the attribute
        names (column_id, position_key). Unknown keys land in `extra`.
        """
        known = {"id", "title", "status", "orderKey", "column_id", "position_key"}
        column_id = data.get("status", data.get("column_id"))
        if column_id is None:
            raise ValueError(f"Item {data.get('id')!r} has no status/column_id")
        return cls(
            id=str(data["id"]),
            column_id=str(column_id),
            position_key=data.get("orderKey", data.get("position_key")) or None,
            title=data.get("title", "") or "",
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class ColumnDefinition:
    """One ordered list on a board. Custom columns are user-created."""
    id: str
    title: str = ""
    custom: bool = False

    def __post_init__(self):
        if not self.title:
            self.title = self.id


@dataclass
class Column:
    """An assembled column: its definition plus items in display order."""
    definition: ColumnDefinition
    items: List[Item] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.definition.id

    def ids(self) -> List[str]:
        return [item.id for item in self.items]


@dataclass
class MoveResult:
    """Outcome of a valid drop."""
    item_id: str
    source_column: str
    target_column: str
    position_key: str
    fields: Dict[str, Any] = field(default_factory=dict)
    persist_task: Optional[Any] = field(default=None, repr=False)  # asyncio.Task when a loop was running

    @property
    def column_changed(self) -> bool:
        return self.source_column != self.target_column
