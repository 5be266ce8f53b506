"""
Registry exceptions.

NodeNotFoundError is a lookup miss, not a storage failure: it does not
derive from StoreError so callers can tell "doesn't exist yet" apart from
"storage is broken".
"""

from typing import Optional


class NodeNotFoundError(LookupError):
    """No record matches the requested node_id or surrogate id."""

    def __init__(self, node_id: Optional[str] = None, record_id: Optional[int] = None):
        self.node_id = node_id
        self.record_id = record_id
        if node_id is not None:
            message = f"Node not found: {node_id}"
        else:
            message = f"Node record not found: id={record_id}"
        super().__init__(message)


class StoreError(RuntimeError):
    """Backend I/O, transaction or constraint failure. The transaction was rolled back."""


class ReconciliationError(StoreError):
    """One or more records could not be set offline during a reconciliation pass."""

    def __init__(self, message: str, report):
        super().__init__(message)
        self.report = report


class RegistryNotReadyError(RuntimeError):
    """A connection event arrived before startup reconciliation finished."""
