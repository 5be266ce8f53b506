"""
Registry Service - the hosting server's entry point into the node registry.

This service:
- Runs startup reconciliation exactly once, before any connection is accepted
- Processes node connected → upsert with online=True
- Processes node disconnected → set online=False
- Processes node removal → set pending_delete
- Optionally runs the pending-delete reaper thread
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from ..config import load_config
from .errors import RegistryNotReadyError
from .models import NodeAnnouncement, NodeRecord
from .node_store import NodeStore
from .reaper import PendingDeleteReaper
from .reconciler import ConnectionReconciler, ReconciliationReport

logger = logging.getLogger(__name__)


class RegistryService:
    """
    Registry Service that bridges connection handlers to NodeStore.

    Connection handlers may call it from many threads; start() must have
    returned before the first of those calls.
    """

    def __init__(
        self,
        store: Optional[NodeStore] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Registry Service.

        Args:
            store: Node store to use. Built from config when None.
            config: Loaded config dict. Loaded from config/envdb.yaml when None.
        """
        self.config = config if config is not None else load_config()
        self.store = store if store is not None else NodeStore.from_config(self.config)

        self.reconciler = ConnectionReconciler(
            self.store,
            continue_on_error=self.config.get("reconciler", {}).get("continue_on_error", False),
        )

        reaper_config = self.config.get("reaper", {})
        self.reaper = PendingDeleteReaper(
            self.store,
            interval_seconds=reaper_config.get("interval_seconds", 300),
            skip_online=reaper_config.get("skip_online", True),
        )
        self._reaper_enabled = reaper_config.get("enabled", False)

        self._accepting = threading.Event()
        self._start_lock = threading.Lock()
        self._start_time: Optional[datetime] = None
        self.last_reconciliation: Optional[ReconciliationReport] = None

        # Statistics
        self._connects = 0
        self._disconnects = 0
        self._removals = 0
        self._errors = 0
        self._stats_lock = threading.Lock()

        logger.info("RegistryService initialized")

    # =========================================================================
    # Service Lifecycle
    # =========================================================================

    def start(self) -> ReconciliationReport:
        """
        Reconcile stale online flags, then start accepting connections.

        A second call returns the first pass's report without reconciling again.

        Raises:
            StoreError: Reconciliation failed; the service stays closed.
        """
        with self._start_lock:
            if self._accepting.is_set():
                logger.warning("RegistryService already started")
                return self.last_reconciliation

            self.last_reconciliation = self.reconciler.reconcile_online_status()

            if self._reaper_enabled:
                self.reaper.start()

            self._start_time = datetime.now()
            self._accepting.set()

        logger.info("RegistryService accepting node connections")
        return self.last_reconciliation

    def stop(self) -> None:
        """Stop accepting connections, stop the reaper and close the store."""
        self._accepting.clear()
        self.reaper.stop()
        self.store.close()

        uptime = ""
        if self._start_time:
            uptime = f" (uptime: {datetime.now() - self._start_time})"
        logger.info(
            f"RegistryService stopped{uptime}: connects={self._connects}, "
            f"disconnects={self._disconnects}, removals={self._removals}, errors={self._errors}"
        )

    @property
    def accepting_connections(self) -> bool:
        return self._accepting.is_set()

    def _require_started(self, action: str) -> None:
        if not self._accepting.is_set():
            raise RegistryNotReadyError(f"Cannot {action}: startup reconciliation has not completed")

    def _count(self, counter: str) -> None:
        with self._stats_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    # =========================================================================
    # Connection events
    # =========================================================================

    def node_connected(self, announcement: NodeAnnouncement) -> NodeRecord:
        """
        Record a node connection.

        The announcement is stored with online=True whatever it says.
        """
        self._require_started("accept node connection")

        if not announcement.online:
            announcement = announcement.model_copy(update={"online": True})

        try:
            record = self.store.upsert_from_announcement(announcement)
        except Exception:
            self._count("_errors")
            raise

        self._count("_connects")
        logger.info(f"Node connected: {record.name or record.node_id} (id={record.id})")
        return record

    def node_disconnected(self, node_id: str) -> NodeRecord:
        """
        Record a node disconnect.

        Raises:
            NodeNotFoundError: Node was never announced
        """
        self._require_started("record node disconnect")

        try:
            record = self.store.set_online(node_id, False)
        except Exception:
            self._count("_errors")
            raise

        self._count("_disconnects")
        logger.info(f"Node disconnected: {record.name or node_id}")
        return record

    def remove_node(self, node_id: str) -> NodeRecord:
        """
        Flag a node for removal. The reaper or `envdb purge` deletes it later.

        Raises:
            NodeNotFoundError: Node was never announced
        """
        self._require_started("remove node")

        try:
            record = self.store.mark_pending_delete(node_id)
        except Exception:
            self._count("_errors")
            raise

        self._count("_removals")
        return record

    # =========================================================================
    # Public API
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        return {
            "service": {
                "accepting_connections": self.accepting_connections,
                "start_time": self._start_time.isoformat() if self._start_time else None,
                "connects": self._connects,
                "disconnects": self._disconnects,
                "removals": self._removals,
                "errors": self._errors,
                "reaper_running": self.reaper.running,
            },
            "registry": self.store.get_stats(),
        }

    def __enter__(self):
        """Start the service on enter."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop the service on exit."""
        self.stop()
        return False
