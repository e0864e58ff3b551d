"""
Optimistic overlay: locally-known intended order per column.

The overlay is the single place where local drag intent lives until the
item store catches up. It holds two things:

    order    column_id -> [item_id, ...]   intended display order
    patches  item_id -> FieldPatch         fields a move persisted but the
                                           snapshot may not show yet

Invariants:
    - an id appears at most once per column list
    - no column list is empty (empty lists are dropped)
    - after prune(), every id refers to a live item
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Iterable, Set, Any

from .schema import Item

logger = logging.getLogger(__name__)


def dedupe(ids: Iterable[str]) -> List[str]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: Set[str] = set()
    out: List[str] = []
    for item_id in ids:
        if item_id in seen:
            continue
        seen.add(item_id)
        out.append(item_id)
    return out


@dataclass
class FieldPatch:
    """Fields written by a move, pending confirmation by a snapshot."""
    fields: Dict[str, Any]
    created_at: float = field(default_factory=time.monotonic)
    settled_at: Optional[float] = None  # set once the persist call finished

    def confirmed_by(self, item: Item) -> bool:
        return all(getattr(item, name, None) == value for name, value in self.fields.items())


class OverlayStore:
    """Single-writer store for optimistic order and field patches."""

    def __init__(self):
        self._order: Dict[str, List[str]] = {}
        self._patches: Dict[str, FieldPatch] = {}

    # ── Order ─────────────────────────────────────────

    def get(self, column_id: str) -> Optional[List[str]]:
        """Overlay list for a column, or None if the column has no local intent."""
        ids = self._order.get(column_id)
        return list(ids) if ids is not None else None

    def snapshot(self) -> Dict[str, List[str]]:
        """Copy of the whole column -> ids mapping."""
        return {column_id: list(ids) for column_id, ids in self._order.items()}

    def apply(self, column_id: str, new_list: Iterable[str]) -> List[str]:
        """Replace a column's list (de-duplicated). Returns the stored list."""
        ids = dedupe(new_list)
        if ids:
            self._order[column_id] = ids
        else:
            self._order.pop(column_id, None)
        return list(ids)

    def remove_everywhere(self, item_id: str) -> None:
        """Remove an id from every column list."""
        for column_id in list(self._order):
            ids = [i for i in self._order[column_id] if i != item_id]
            if ids:
                self._order[column_id] = ids
            else:
                del self._order[column_id]

    def prune(self, live_ids: Set[str]) -> bool:
        """
        Forget ids that are no longer live.

        Call once per snapshot refresh. Returns True if anything changed.
        """
        changed = False
        cleaned: Dict[str, List[str]] = {}
        for column_id, ids in self._order.items():
            kept = [i for i in ids if i in live_ids]
            if len(kept) != len(ids):
                changed = True
            if kept:
                cleaned[column_id] = kept
        self._order = cleaned

        stale = [item_id for item_id in self._patches if item_id not in live_ids]
        for item_id in stale:
            del self._patches[item_id]

        if changed or stale:
            logger.info(f"Pruned stale ids from overlay ({len(stale)} patches dropped)")
        return changed or bool(stale)

    # ── Field patches ─────────────────────────────────

    def patch(self, item_id: str, fields: Dict[str, Any]) -> FieldPatch:
        """Record fields for an item, superseding any earlier patch."""
        p = FieldPatch(fields=dict(fields))
        self._patches[item_id] = p
        return p

    def patch_for(self, item_id: str) -> Optional[FieldPatch]:
        return self._patches.get(item_id)

    def mark_settled(self, item_id: str, p: FieldPatch, when: Optional[float] = None) -> None:
        """Mark a patch's persist call as finished. Ignored if the patch was superseded."""
        if self._patches.get(item_id) is p:
            p.settled_at = time.monotonic() if when is None else when

    def settle_patches(self, items: Iterable[Item], fetched_at: Optional[float] = None) -> int:
        """
        Drop patches the snapshot makes redundant.

        A patch goes when the snapshot already carries its fields, or when
        its persist call finished before the snapshot was fetched.
        Returns the number of patches dropped.
        """
        by_id = {item.id: item for item in items}
        dropped = 0
        for item_id, p in list(self._patches.items()):
            item = by_id.get(item_id)
            if item is not None and p.confirmed_by(item):
                del self._patches[item_id]
                dropped += 1
            elif p.settled_at is not None and (fetched_at is None or p.settled_at <= fetched_at):
                del self._patches[item_id]
                dropped += 1
        return dropped

    def apply_patches(self, items: Iterable[Item]) -> List[Item]:
        """Items with pending patches applied (originals are left untouched)."""
        out = []
        for item in items:
            p = self._patches.get(item.id)
            out.append(item.with_fields(p.fields) if p else item)
        return out

    def __len__(self) -> int:
        return len(self._order)

    def __repr__(self) -> str:
        return f"OverlayStore(columns={len(self._order)}, patches={len(self._patches)})"
