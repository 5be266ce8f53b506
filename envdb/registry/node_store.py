"""
Node Record Store - SQLAlchemy-backed persistence for registry records.

This store provides:
- Upsert of a node from its announcement (create on first sight)
- Lookup by node_id and full scan
- Full-column update and physical delete by surrogate id
- Soft-delete marking and conditional purge

Every operation runs in its own transaction. Any SQLAlchemy failure rolls
the transaction back and surfaces as StoreError; a lookup miss surfaces as
NodeNotFoundError.

Ready-Made Solutions:
- SQLAlchemy: Database ORM
- Pydantic: Data validation
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import NodeNotFoundError, StoreError
from .models import Base, NodeAnnouncement, NodeModel, NodeRecord

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///.data/envdb.db"


class NodeStore:
    """
    Durable, transactional CRUD over node records.

    Keyed by node_id for lookup and upsert, by surrogate id for update and
    delete. Construct once at startup and hand the instance to every caller.
    """

    def __init__(
        self,
        database_url: str = DEFAULT_DATABASE_URL,
        echo: bool = False,
        busy_timeout_seconds: float = 30,
        serialize_upserts: bool = True,
    ):
        """
        Initialize Node Store.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log emitted SQL
            busy_timeout_seconds: SQLite lock wait before failing
            serialize_upserts: Hold a per-node_id lock across read-modify-write
        """
        self.database_url = database_url
        self.serialize_upserts = serialize_upserts

        try:
            url = make_url(database_url)
        except SQLAlchemyError as e:
            raise StoreError(f"Invalid database URL: {e}") from e

        engine_kwargs: Dict[str, Any] = {"echo": echo}

        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": busy_timeout_seconds,
            }
            if not url.database or url.database == ":memory:":
                # One shared connection, otherwise every session sees its own empty database
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(url.database).resolve().parent.mkdir(parents=True, exist_ok=True)

        try:
            self.engine = create_engine(database_url, **engine_kwargs)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot open node database {url.render_as_string(hide_password=True)}: {e}") from e

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        # node_id -> lock guarding upsert/update of that node
        self._node_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        logger.info(
            f"NodeStore initialized: db={url.render_as_string(hide_password=True)}, "
            f"serialize_upserts={serialize_upserts}"
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "NodeStore":
        """Build a store from the `database` and `store` config sections."""
        database = config.get("database", {})
        return cls(
            database_url=database.get("url", DEFAULT_DATABASE_URL),
            echo=database.get("echo", False),
            busy_timeout_seconds=database.get("busy_timeout_seconds", 30),
            serialize_upserts=config.get("store", {}).get("serialize_upserts", True),
        )

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Session]:
        """Yield a session; commit on success, roll back on any failure."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"{action} failed, rolled back: {e}")
            raise StoreError(f"{action} failed: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _node_lock(self, node_id: str):
        """Per-node_id lock, or a no-op context when serialization is off."""
        if not self.serialize_upserts:
            return nullcontext()
        with self._locks_guard:
            lock = self._node_locks.get(node_id)
            if lock is None:
                lock = self._node_locks[node_id] = threading.Lock()
            return lock

    # =========================================================================
    # Queries
    # =========================================================================

    def find_all(self) -> List[NodeRecord]:
        """
        Return every record regardless of online or pending_delete state.

        Returns:
            List of NodeRecord ordered by surrogate id
        """
        with self._transaction("Listing nodes") as session:
            rows = session.query(NodeModel).order_by(NodeModel.id).all()
            return [row.to_record() for row in rows]

    def find_by_node_id(self, node_id: str) -> NodeRecord:
        """
        Exact-match lookup by node_id.

        Raises:
            NodeNotFoundError: No record has that node_id
            StoreError: Backend failure
        """
        logger.debug(f"Looking for node with id: {node_id}")

        with self._transaction(f"Lookup of node {node_id}") as session:
            row = session.query(NodeModel).filter(NodeModel.node_id == node_id).first()
            if row is None:
                raise NodeNotFoundError(node_id=node_id)
            return row.to_record()

    # =========================================================================
    # Mutations
    # =========================================================================

    def upsert_from_announcement(self, announcement: NodeAnnouncement) -> NodeRecord:
        """
        Create or fully overwrite the record for announcement.node_id.

        Flow:
        1. SELECT by node_id inside one transaction
        2. Found → overwrite every mutable field, bump updated_at
        3. Not found → INSERT with pending_delete=False
        4. COMMIT

        Last writer wins: there is no merge and no version check.

        Returns:
            The record as committed
        """
        node_id = announcement.node_id

        with self._node_lock(node_id):
            with self._transaction(f"Upsert of node {node_id}") as session:
                row = session.query(NodeModel).filter(NodeModel.node_id == node_id).first()

                if row is not None:
                    logger.debug(f"Found existing node record: {node_id} (id={row.id})")
                    row.apply(announcement)
                else:
                    logger.debug(f"Creating a new record for node: {node_id}")
                    row = NodeModel.from_announcement(announcement)
                    session.add(row)

                session.flush()  # Get ID assigned
                record = row.to_record()

        logger.info(f"Node upserted: {record.name or node_id} (id={record.id}, online={record.online})")
        return record

    def update(self, record: NodeRecord) -> NodeRecord:
        """
        Overwrite all columns of an already-loaded record by its surrogate id.

        id, node_id and created_at are never written.

        Raises:
            NodeNotFoundError: The row no longer exists
            StoreError: Backend failure (nothing was written)
        """
        with self._node_lock(record.node_id):
            with self._transaction(f"Update of node {record.node_id}") as session:
                row = session.get(NodeModel, record.id)
                if row is None:
                    raise NodeNotFoundError(record_id=record.id)

                row.apply(record)
                session.flush()
                stored = row.to_record()

        logger.debug(f"Node updated: {stored.node_id} (id={stored.id}, online={stored.online})")
        return stored

    def mark_pending_delete(self, node_id: str) -> NodeRecord:
        """
        Set the soft-delete marker on an existing record.

        The record stays queryable until a hard delete purges it.
        """
        with self._node_lock(node_id):
            with self._transaction(f"Soft delete of node {node_id}") as session:
                row = session.query(NodeModel).filter(NodeModel.node_id == node_id).first()
                if row is None:
                    raise NodeNotFoundError(node_id=node_id)

                row.pending_delete = True
                row.updated_at = datetime.utcnow()
                session.flush()
                stored = row.to_record()

        logger.info(f"Node marked for deletion: {node_id}")
        return stored

    def set_online(self, node_id: str, online: bool) -> NodeRecord:
        """
        Write only the online flag (and updated_at) of an existing record.

        Metadata written by a concurrent upsert is left alone.

        Raises:
            NodeNotFoundError: No record has that node_id
        """
        with self._node_lock(node_id):
            with self._transaction(f"Online update of node {node_id}") as session:
                row = session.query(NodeModel).filter(NodeModel.node_id == node_id).first()
                if row is None:
                    raise NodeNotFoundError(node_id=node_id)

                row.online = online
                row.updated_at = datetime.utcnow()
                session.flush()
                stored = row.to_record()

        logger.debug(f"Node {node_id} online={online}")
        return stored

    def delete(self, record: NodeRecord) -> bool:
        """
        Physically remove a record by its surrogate id.

        Returns:
            True if the row was removed, False if it was already gone
        """
        # Lock entries are never dropped: a waiter may still hold the old lock.
        with self._node_lock(record.node_id):
            with self._transaction(f"Delete of node {record.node_id}") as session:
                row = session.get(NodeModel, record.id)
                if row is None:
                    logger.warning(f"Cannot delete: node record id={record.id} not found")
                    return False
                session.delete(row)

        logger.info(f"Node deleted: {record.node_id} (id={record.id})")
        return True

    def purge_pending(self, record: NodeRecord, skip_online: bool = True) -> bool:
        """
        Delete a record only if it is still flagged pending_delete.

        The flag (and, with skip_online, the offline state) is checked again
        inside the delete transaction, so a node that reconnected after the
        caller's scan is kept.

        Returns:
            True if the row was removed, False if it is gone or no longer eligible
        """
        with self._node_lock(record.node_id):
            with self._transaction(f"Purge of node {record.node_id}") as session:
                query = session.query(NodeModel).filter(
                    NodeModel.id == record.id,
                    NodeModel.pending_delete.is_(True),
                )
                if skip_online:
                    query = query.filter(NodeModel.online.is_(False))

                row = query.first()
                if row is None:
                    logger.debug(f"Purge skipped: {record.node_id} (id={record.id}) no longer eligible")
                    return False
                session.delete(row)

        logger.info(f"Node purged: {record.node_id} (id={record.id})")
        return True

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> Dict[str, int]:
        """
        Get record counts.

        Returns:
            Dict with total, online and pending_delete counts
        """
        records = self.find_all()
        return {
            "total_nodes": len(records),
            "online_nodes": sum(1 for r in records if r.online),
            "pending_delete_nodes": sum(1 for r in records if r.pending_delete),
        }

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        self.engine.dispose()
        logger.debug("NodeStore closed")
