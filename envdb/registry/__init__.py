"""
Node Registry module for envdb.

Components:
- models: Pydantic and SQLAlchemy models for node records
- node_store: transactional store keyed by node_id
- reconciler: startup repair of stale online flags
- reaper: hard delete of soft-deleted records
- registry_service: connect / disconnect / removal entry point

Ready-Made Solutions:
- SQLAlchemy: Database ORM
- Pydantic: Data validation
"""

from .errors import (
    NodeNotFoundError,
    ReconciliationError,
    RegistryNotReadyError,
    StoreError,
)
from .models import NodeAnnouncement, NodeModel, NodeRecord
from .node_store import NodeStore
from .reaper import PendingDeleteReaper
from .reconciler import ConnectionReconciler, ReconciliationReport
from .registry_service import RegistryService

__all__ = [
    # Models
    "NodeAnnouncement",
    "NodeRecord",
    "NodeModel",
    # Errors
    "NodeNotFoundError",
    "StoreError",
    "ReconciliationError",
    "RegistryNotReadyError",
    # Components
    "NodeStore",
    "ConnectionReconciler",
    "ReconciliationReport",
    "PendingDeleteReaper",
    "RegistryService",
]
