"""
Snapshot poller: refreshes a board from its item store on a fixed interval.

There is no push channel, so the board only learns about other clients'
moves (and confirms its own) when this loop fetches a new snapshot.
Ticks that land while a drag is in progress are skipped.
"""
import asyncio
import logging
import time
from typing import Optional

from .board import Board
from .store import ItemStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0  # seconds


class SnapshotPoller:
    """Periodically feeds store.list_items() into board.refresh()."""

    def __init__(
        self,
        store: ItemStore,
        board: Board,
        interval: float = DEFAULT_INTERVAL,
        skip_while_dragging: bool = True,
    ):
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self.store = store
        self.board = board
        self.interval = interval
        self.skip_while_dragging = skip_while_dragging
        self.connected = False
        self._stop: Optional[asyncio.Event] = None

    async def poll_once(self) -> bool:
        """
        Run one refresh cycle. Returns True if the board was refreshed.

        Fetch errors are logged and leave the current snapshot in place.
        """
        if self.skip_while_dragging and self.board.is_dragging:
            logger.debug("Skipping refresh during drag operation")
            return False

        fetched_at = time.monotonic()
        try:
            items = await asyncio.to_thread(self.store.list_items)
        except Exception as e:
            logger.error(f"Polling error: {e}")
            self.connected = False
            return False

        self.connected = True
        if self.skip_while_dragging and self.board.is_dragging:
            logger.debug("Drag started during fetch; snapshot discarded")
            return False
        self.board.refresh(items, fetched_at=fetched_at)
        return True

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._stop = asyncio.Event()
        logger.info(f"Polling enabled (every {self.interval:g}s)")
        while not self._stop.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Polling stopped")

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
