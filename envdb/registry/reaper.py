"""
Pending-delete reaper - hard-deletes records flagged with pending_delete.

The store never purges on its own; this sweep is the explicit caller of
NodeStore.purge_pending for soft-deleted nodes. Run it once (CLI `purge`) or as a
background thread.
"""

import logging
import threading
from typing import List, Optional

from .errors import StoreError
from .node_store import NodeStore

logger = logging.getLogger(__name__)


class PendingDeleteReaper:
    """Purges soft-deleted node records."""

    def __init__(
        self,
        store: NodeStore,
        interval_seconds: float = 300,
        skip_online: bool = True,
    ):
        """
        Initialize reaper.

        Args:
            store: Node store to sweep.
            interval_seconds: Delay between sweeps of the background thread.
            skip_online: Leave records that are still online for a later sweep.
        """
        self.store = store
        self.interval_seconds = interval_seconds
        self.skip_online = skip_online

        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def run_once(self) -> List[str]:
        """
        Delete every record marked pending_delete.

        Returns:
            List of purged node_ids.
        """
        purged = []

        for record in self.store.find_all():
            if not record.pending_delete:
                continue
            if self.skip_online and record.online:
                logger.debug(f"Reaper: {record.node_id} still online, keeping for now")
                continue

            if self.store.purge_pending(record, skip_online=self.skip_online):
                purged.append(record.node_id)

        if purged:
            logger.info(f"Reaper purged {len(purged)} nodes")
        return purged

    # =========================================================================
    # Background thread
    # =========================================================================

    def start(self):
        """Start background thread that sweeps every interval_seconds."""
        if self._thread and self._thread.is_alive():
            logger.warning("Reaper thread already running")
            return

        self._stop.clear()

        def reap_loop():
            logger.info(f"Reaper thread started (interval={self.interval_seconds}s)")

            while not self._stop.wait(timeout=self.interval_seconds):
                try:
                    self.run_once()
                except StoreError as e:
                    logger.error(f"Error in reaper thread: {e}")

            logger.info("Reaper thread stopped")

        self._thread = threading.Thread(target=reap_loop, name="envdb-reaper", daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the background thread."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self):
        """Start reaper thread on enter."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop reaper thread on exit."""
        self.stop()
        return False
