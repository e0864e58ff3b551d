"""
Board: one parameterized ordering engine for every board variant.

A board is configured with its column definitions, a drop-validity
predicate, an optional visibility filter and the store's persist call.
Project boards, personal boards and the default board differ only in
those parameters.

    board = Board(columns, persist=store.persist, accepts=rules.allow_all)
    board.refresh(store.list_items())
    board.move("KAN-3", "KAN-1", DropPosition.AFTER)
    for column in board.columns():
        ...
"""
import logging
import time
from typing import Callable, Iterable, List, Optional, Sequence

from .moves import AcceptsFn, MoveHandler, PersistErrorFn, PersistFn
from .overlay import OverlayStore
from .reconcile import assemble
from .schema import Column, ColumnDefinition, DropPosition, Item, MoveResult

logger = logging.getLogger(__name__)


class Board:
    """Snapshot + overlay + move handler for one set of columns."""

    def __init__(
        self,
        columns: Sequence[ColumnDefinition],
        persist: PersistFn,
        accepts: Optional[AcceptsFn] = None,
        item_filter: Optional[Callable[[Item], bool]] = None,
        on_persist_error: Optional[PersistErrorFn] = None,
    ):
        self.definitions: List[ColumnDefinition] = list(columns)
        self.item_filter = item_filter
        self.overlay = OverlayStore()
        self.moves = MoveHandler(
            self.overlay, persist, accepts=accepts, on_persist_error=on_persist_error,
        )
        self._items: List[Item] = []
        self.last_refresh: Optional[float] = None

    # ── Snapshot ──────────────────────────────────────

    @property
    def items(self) -> List[Item]:
        """The current (visible) snapshot, without local patches."""
        return list(self._items)

    def refresh(self, items: Iterable[Item], fetched_at: Optional[float] = None) -> None:
        """
        Replace the snapshot. Prunes the overlay once per refresh.

        fetched_at is the monotonic time the snapshot was read from the
        store; patches whose persist finished before it are dropped.
        """
        snapshot = list(items)
        if self.item_filter is not None:
            snapshot = [item for item in snapshot if self.item_filter(item)]
        self._items = snapshot

        self.overlay.prune({item.id for item in snapshot})
        dropped = self.overlay.settle_patches(snapshot, fetched_at)
        if dropped:
            logger.debug(f"Settled {dropped} local patches")
        self.last_refresh = time.monotonic() if fetched_at is None else fetched_at

    # ── Column assembly ───────────────────────────────

    def columns(self) -> List[Column]:
        """Ordered lists for every column definition."""
        return assemble(self._items, self.definitions, self.overlay)

    def column(self, column_id: str) -> Column:
        for definition in self.definitions:
            if definition.id == column_id:
                return assemble(self._items, [definition], self.overlay)[0]
        raise KeyError(f"Unknown column: {column_id}")

    def column_ids(self) -> List[str]:
        return [d.id for d in self.definitions]

    # ── Drag and drop ─────────────────────────────────

    @property
    def is_dragging(self) -> bool:
        return self.moves.is_dragging

    def begin_drag(self, item_id: str) -> None:
        self.moves.begin(item_id)

    def cancel_drag(self) -> None:
        self.moves.cancel()

    def drop(self, target_id: str, position: DropPosition) -> Optional[MoveResult]:
        return self.moves.drop(self._items, target_id, position)

    def drop_on_column(self, column_id: str) -> Optional[MoveResult]:
        if column_id not in self.column_ids():
            logger.info(f"Drop onto unknown column {column_id} ignored")
            self.moves.cancel()
            return None
        return self.moves.drop_on_column(self._items, column_id)

    def move(
        self, dragged_id: str, target_id: str, position: DropPosition = DropPosition.AFTER
    ) -> Optional[MoveResult]:
        """Complete drag of dragged_id onto target_id in one call."""
        return self.moves.move(self._items, dragged_id, target_id, position)

    async def drain(self) -> None:
        """Wait for in-flight persist calls."""
        await self.moves.drain()

    def __str__(self) -> str:
        return ", ".join(f"{c.definition.title}: {len(c.items)} items" for c in self.columns())
