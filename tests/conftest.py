"""
Shared fixtures for envdb tests.

Every test gets its own SQLite file under tmp_path.
"""

import sys
from contextlib import contextmanager
from pathlib import Path

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

sys.path.insert(0, str(Path(__file__).parent.parent))

from envdb.registry.models import NodeAnnouncement
from envdb.registry.node_store import NodeStore


@pytest.fixture
def database_url(tmp_path):
    """SQLite URL for a fresh database file."""
    return f"sqlite:///{tmp_path / 'envdb.db'}"


@pytest.fixture
def store(database_url):
    """Create a NodeStore on a fresh database."""
    node_store = NodeStore(database_url=database_url)
    yield node_store
    node_store.close()


@pytest.fixture
def make_announcement():
    """Factory for NodeAnnouncement with sensible defaults."""
    def _make(node_id: str = "n1", **overrides) -> NodeAnnouncement:
        fields = {
            "node_id": node_id,
            "name": f"agent-{node_id}",
            "version": "0.4.2",
            "ip_address": "10.0.0.1",
            "hostname": f"{node_id}.internal",
            "os_name": "linux",
            "online": True,
        }
        fields.update(overrides)
        return NodeAnnouncement(**fields)

    return _make


@contextmanager
def failing_flush(store: NodeStore):
    """Make every flush in the store's sessions fail like a broken disk."""
    def fail(session, flush_context, instances):
        raise OperationalError("UPDATE nodes", {}, Exception("disk I/O error"))

    event.listen(store.SessionLocal, "before_flush", fail)
    try:
        yield
    finally:
        event.remove(store.SessionLocal, "before_flush", fail)


@pytest.fixture
def flush_failure():
    """Context manager factory: `with flush_failure(store): ...`."""
    return failing_flush
