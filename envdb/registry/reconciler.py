"""
Connection Reconciler - startup repair of stale online flags.

After an ungraceful shutdown the table can still claim nodes are online
although no session survived the restart. The reconciler sets every such
record offline. It must finish before the server accepts connections,
otherwise a node that has already reconnected would be set offline again.

Each correction is its own transaction: a failure never undoes corrections
already committed.
"""

import logging
from typing import Dict, List

from pydantic import BaseModel, Field

from .errors import ReconciliationError
from .node_store import NodeStore

logger = logging.getLogger(__name__)


class ReconciliationReport(BaseModel):
    """Outcome of one reconciliation pass."""
    total: int = Field(default=0, ge=0, description="Records scanned")
    corrected: List[str] = Field(default_factory=list, description="node_ids set offline")
    skipped: int = Field(default=0, ge=0, description="Records already offline")
    failed: Dict[str, str] = Field(default_factory=dict, description="node_id -> error")

    @property
    def ok(self) -> bool:
        return not self.failed


class ConnectionReconciler:
    """
    Forces every previously-online node to offline.

    online → offline is the only transition performed, so running the pass
    twice in a row changes nothing the second time.
    """

    def __init__(self, store: NodeStore, continue_on_error: bool = False):
        """
        Initialize Connection Reconciler.

        Args:
            store: Node store to repair.
            continue_on_error: Keep going past per-record failures and raise
                a single ReconciliationError at the end, instead of stopping
                at the first failure.
        """
        self.store = store
        self.continue_on_error = continue_on_error

    def reconcile_online_status(self) -> ReconciliationReport:
        """
        Set every online record offline.

        Returns:
            ReconciliationReport for the pass

        Raises:
            StoreError: First failure (default mode)
            ReconciliationError: One or more failures (continue_on_error mode)
        """
        records = self.store.find_all()
        report = ReconciliationReport(total=len(records))

        logger.info(f"Reconciling online status of {len(records)} nodes...")

        for record in records:
            if not record.online:
                report.skipped += 1
                continue

            record.online = False
            try:
                self.store.update(record)
            except Exception as e:
                if not self.continue_on_error:
                    logger.error(
                        f"Reconciliation stopped after {len(report.corrected)} of "
                        f"{len(records)} records: {record.node_id}: {e}"
                    )
                    raise
                report.failed[record.node_id] = str(e)
                logger.error(f"Reconciliation: could not set {record.node_id} offline: {e}")
                continue

            report.corrected.append(record.node_id)
            logger.debug(f"Reconciliation: {record.node_id} set offline")

        if report.failed:
            raise ReconciliationError(
                f"Reconciliation failed for {len(report.failed)} of {len(records)} nodes",
                report,
            )

        logger.info(
            f"Reconciliation complete: {len(report.corrected)} set offline, "
            f"{report.skipped} already offline"
        )
        return report
