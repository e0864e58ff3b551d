"""
Move handler: turns a drag-drop into an optimistic reorder plus a persist call.

One drag runs through:

    idle → dragging → (dropped-valid | dropped-invalid) → idle

Only a valid drop has effects, and they happen in this order:
    1. a new position key is computed from the target's neighbors
    2. the overlay is updated synchronously (visible on the next render)
    3. persist(item_id, fields, silent=True) is scheduled on the event loop

A failed persist is logged and reported to on_persist_error. The overlay
is not rolled back; the next successful refresh settles the order.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Set

from . import order_key
from .overlay import FieldPatch, OverlayStore
from .reconcile import assemble_column, canonical_order
from .schema import COLUMN_FIELD, POSITION_FIELD, DragState, DropPosition, Item, MoveResult

logger = logging.getLogger(__name__)


class PersistFn(Protocol):
    """persist(item_id, fields, *, silent): write fields to the item store."""

    def __call__(self, item_id: str, fields: Dict[str, Any], *, silent: bool) -> Awaitable[Any]:
        ...


AcceptsFn = Callable[[Item, str], bool]            # accepts(item, target_column_id)
PersistErrorFn = Callable[[str, Dict[str, Any], Exception], None]


def _accept_any(item: Item, column_id: str) -> bool:
    return True


class MoveHandler:
    """Applies drops to an OverlayStore and persists them through an item store."""

    def __init__(
        self,
        overlay: OverlayStore,
        persist: PersistFn,
        accepts: Optional[AcceptsFn] = None,
        on_persist_error: Optional[PersistErrorFn] = None,
    ):
        self.overlay = overlay
        self._persist_fn = persist
        self.accepts = accepts or _accept_any
        self.on_persist_error = on_persist_error

        self.state = DragState.IDLE
        self.dragged_id: Optional[str] = None
        self.last_outcome: Optional[DragState] = None
        self._pending: Set[asyncio.Task] = set()
        self._last_persist: Dict[str, asyncio.Task] = {}

    # ──────────────────────────────────────────
    # Drag lifecycle
    # ──────────────────────────────────────────

    @property
    def is_dragging(self) -> bool:
        return self.state == DragState.DRAGGING

    def begin(self, item_id: str) -> None:
        """Start dragging an item. A second begin() replaces the first drag."""
        if self.state == DragState.DRAGGING:
            logger.debug(f"Drag of {self.dragged_id} replaced by {item_id}")
        self.state = DragState.DRAGGING
        self.dragged_id = item_id

    def cancel(self) -> None:
        """Drag ended without a drop: no state change beyond the gesture."""
        if self.state == DragState.DRAGGING:
            self._finish(DragState.DROPPED_INVALID)

    def drop(self, items: Iterable[Item], target_id: str, position: DropPosition) -> Optional[MoveResult]:
        """Drop the dragged item before/after target_id. Returns None for an invalid drop."""
        if self.state != DragState.DRAGGING or self.dragged_id is None:
            logger.info("Drop without an active drag ignored")
            return None
        result = self._move_relative(items, self.dragged_id, target_id, position)
        self._finish(DragState.DROPPED_VALID if result else DragState.DROPPED_INVALID)
        return result

    def drop_on_column(self, items: Iterable[Item], column_id: str) -> Optional[MoveResult]:
        """Drop the dragged item onto a column body; it goes after the column's last item."""
        if self.state != DragState.DRAGGING or self.dragged_id is None:
            logger.info("Drop without an active drag ignored")
            return None
        result = self._move_to_end(items, self.dragged_id, column_id)
        self._finish(DragState.DROPPED_VALID if result else DragState.DROPPED_INVALID)
        return result

    def move(
        self,
        items: Iterable[Item],
        dragged_id: str,
        target_id: str,
        position: DropPosition = DropPosition.AFTER,
    ) -> Optional[MoveResult]:
        """begin() + drop() in one call."""
        self.begin(dragged_id)
        return self.drop(items, target_id, position)

    def _finish(self, outcome: DragState) -> None:
        self.last_outcome = outcome
        self.state = DragState.IDLE
        self.dragged_id = None

    # ──────────────────────────────────────────
    # Drop computation
    # ──────────────────────────────────────────

    def _resolve(self, items: Iterable[Item], dragged_id: str) -> Optional[tuple]:
        """Effective items (patches applied) and the dragged item, or None."""
        effective = self.overlay.apply_patches(items)
        by_id: Dict[str, Item] = {}
        for item in effective:
            by_id.setdefault(item.id, item)
        dragged = by_id.get(dragged_id)
        if dragged is None:
            logger.info(f"Dragged item {dragged_id} not found")
            return None
        return effective, by_id, dragged

    def _move_relative(
        self, items: Iterable[Item], dragged_id: str, target_id: str, position: DropPosition
    ) -> Optional[MoveResult]:
        resolved = self._resolve(items, dragged_id)
        if resolved is None:
            return None
        effective, by_id, dragged = resolved

        target = by_id.get(target_id)
        if target is None:
            logger.info(f"Drop target {target_id} not found")
            return None
        if target_id == dragged_id:
            logger.debug(f"Item {dragged_id} dropped onto itself")
            return None

        target_column = target.column_id
        if not self.accepts(dragged, target_column):
            logger.info(f"Item {dragged_id} not allowed in column {target_column}")
            return None

        # Neighbors in the target column, ignoring the dragged item
        column = [i for i in canonical_order(effective, target_column) if i.id != dragged_id]
        idx = next(n for n, i in enumerate(column) if i.id == target_id)
        if position == DropPosition.BEFORE:
            before = column[idx - 1] if idx > 0 else None
            after = target
        else:
            before = target
            after = column[idx + 1] if idx + 1 < len(column) else None

        new_key = self._key_between(before, after, target, position)

        display = [i.id for i in assemble_column(effective, target_column, self.overlay) if i.id != dragged_id]
        insert_at = display.index(target_id)
        if position == DropPosition.AFTER:
            insert_at += 1
        display.insert(insert_at, dragged_id)

        return self._commit(dragged, target_column, new_key, display)

    def _move_to_end(self, items: Iterable[Item], dragged_id: str, column_id: str) -> Optional[MoveResult]:
        resolved = self._resolve(items, dragged_id)
        if resolved is None:
            return None
        effective, _, dragged = resolved

        if not self.accepts(dragged, column_id):
            logger.info(f"Item {dragged_id} not allowed in column {column_id}")
            return None

        column = [i for i in canonical_order(effective, column_id) if i.id != dragged_id]
        if column:
            last_key = order_key.normalize_key(column[-1].position_key)
            try:
                new_key = order_key.generate(last_key or None, None)
            except ValueError as e:
                logger.warning(f"Cannot place key after {last_key!r}: {e}")
                new_key = order_key.DEFAULT_KEY
        else:
            new_key = order_key.generate()

        display = [i.id for i in assemble_column(effective, column_id, self.overlay) if i.id != dragged_id]
        display.append(dragged_id)
        return self._commit(dragged, column_id, new_key, display)

    def _key_between(
        self, before: Optional[Item], after: Optional[Item], target: Item, position: DropPosition
    ) -> str:
        """
        New key between two neighbors.

        Neighbors sharing a key (legacy items on the default key) leave no
        room; the key is then placed relative to the target alone. Legacy
        keys ending in "0" are normalized first.
        """
        lo = order_key.normalize_key(before.position_key) if before else None
        hi = order_key.normalize_key(after.position_key) if after else None
        anchor = order_key.normalize_key(target.position_key)
        if position == DropPosition.BEFORE:
            candidates = [(lo, hi), (None, anchor)]
        else:
            candidates = [(lo, hi), (anchor, None)]

        for lo_key, hi_key in candidates:
            if hi_key == "":
                logger.warning(f"No key sorts below legacy key of {(after or target).id}")
                continue
            try:
                key = order_key.generate(lo_key or None, hi_key)
            except ValueError as e:
                logger.warning(f"Key collision between {lo_key!r} and {hi_key!r}: {e}")
                continue
            logger.debug(f"Generated key {key!r} between {lo_key!r} and {hi_key!r}")
            return key
        return order_key.DEFAULT_KEY

    # ──────────────────────────────────────────
    # Effects
    # ──────────────────────────────────────────

    def _commit(self, dragged: Item, target_column: str, new_key: str, target_order: List[str]) -> MoveResult:
        source_column = dragged.column_id
        fields: Dict[str, Any] = {POSITION_FIELD: new_key}
        if source_column != target_column:
            fields[COLUMN_FIELD] = target_column

        # Synchronous: visible on the very next render
        self.overlay.remove_everywhere(dragged.id)
        self.overlay.apply(target_column, target_order)
        patch = self.overlay.patch(dragged.id, fields)

        logger.debug(
            f"Moved {dragged.id}: {source_column} → {target_column}, key={new_key}"
        )
        task = self._schedule(dragged.id, fields, patch)
        return MoveResult(
            item_id=dragged.id,
            source_column=source_column,
            target_column=target_column,
            position_key=new_key,
            fields=dict(fields),
            persist_task=task,
        )

    def _schedule(self, item_id: str, fields: Dict[str, Any], patch: FieldPatch) -> Optional[asyncio.Task]:
        """
        Fire-and-forget on the running loop; run to completion when there is none.

        Persists of the same item are chained, so the store always ends up
        with the fields of the latest move.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._persist(item_id, dict(fields), patch))
            return None
        previous = self._last_persist.get(item_id)
        task = loop.create_task(self._persist(item_id, dict(fields), patch, previous))
        self._pending.add(task)
        self._last_persist[item_id] = task
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda t: self._forget(item_id, t))
        return task

    def _forget(self, item_id: str, task: asyncio.Task) -> None:
        if self._last_persist.get(item_id) is task:
            del self._last_persist[item_id]

    async def _persist(
        self,
        item_id: str,
        fields: Dict[str, Any],
        patch: FieldPatch,
        previous: Optional[asyncio.Task] = None,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        try:
            await self._persist_fn(item_id, fields, silent=True)
            logger.debug(f"Persisted move of {item_id}: {fields}")
        except Exception as e:
            logger.error(f"Failed to persist move of {item_id}: {e}")
            if self.on_persist_error is not None:
                try:
                    self.on_persist_error(item_id, fields, e)
                except Exception as cb_err:
                    logger.error(f"Error in persist error callback: {cb_err}")
        finally:
            self.overlay.mark_settled(item_id, patch)

    @property
    def pending(self) -> int:
        """Number of persist calls still in flight."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight persist call."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
