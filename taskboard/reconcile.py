"""
Canonical ordering and reconciliation with the optimistic overlay.

    canonical_order  items of one column sorted by position key, then id
    reconcile        overlay-known items first (overlay order), the rest
                     after them in canonical order, de-duplicated
    assemble         reconcile every column definition of a board
"""
from typing import Iterable, List, Optional, Sequence, Set

from .order_key import effective_key
from .overlay import OverlayStore
from .schema import Item, Column, ColumnDefinition


def sort_key(item: Item):
    """Position key first, id as a deterministic tie-break."""
    return (effective_key(item.position_key), str(item.id))


def canonical_order(items: Iterable[Item], column_id: str) -> List[Item]:
    """Items in column_id ordered purely by persisted position keys."""
    return sorted((item for item in items if item.column_id == column_id), key=sort_key)


def dedupe_items(items: Iterable[Item]) -> List[Item]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: Set[str] = set()
    out: List[Item] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


def reconcile(canonical: Sequence[Item], overlay_ids: Optional[Sequence[str]]) -> List[Item]:
    """
    Merge overlay intent into a canonical column.

    Items named by the overlay come first in overlay order; items it does
    not mention keep their canonical relative order after them. Overlay ids
    with no matching item are skipped.
    """
    if not overlay_ids:
        return dedupe_items(canonical)

    by_id = {}
    for item in canonical:
        by_id.setdefault(item.id, item)

    known = [by_id[i] for i in overlay_ids if i in by_id]
    mentioned = set(overlay_ids)
    rest = [item for item in canonical if item.id not in mentioned]
    return dedupe_items(known + rest)


def assemble_column(items: Iterable[Item], column_id: str, overlay: Optional[OverlayStore] = None) -> List[Item]:
    """Display order for one column."""
    canonical = canonical_order(items, column_id)
    overlay_ids = overlay.get(column_id) if overlay is not None else None
    return reconcile(canonical, overlay_ids)


def assemble(
    items: Iterable[Item],
    definitions: Sequence[ColumnDefinition],
    overlay: Optional[OverlayStore] = None,
) -> List[Column]:
    """
    Ordered lists for every column definition.

    Pending field patches in the overlay are applied first, so a card moved
    to another column shows there before the store confirms the move.
    """
    effective = overlay.apply_patches(items) if overlay is not None else list(items)
    return [
        Column(definition=definition, items=assemble_column(effective, definition.id, overlay))
        for definition in definitions
    ]
