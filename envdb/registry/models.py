"""
Registry Models - Pydantic and SQLAlchemy models for the node registry.

This module provides:
- NodeAnnouncement (Pydantic) - what a node reports when it connects
- NodeRecord (Pydantic) - a stored node as seen by callers
- NodeModel (SQLAlchemy) - the `nodes` table

Ready-Made Solutions:
- Pydantic v2 for validation
- SQLAlchemy for ORM
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base


# =============================================================================
# Pydantic Models (for validation and callers)
# =============================================================================


class NodeAnnouncement(BaseModel):
    """
    Metadata a node (or its connection handler) supplies on connect.

    Every field except node_id overwrites the stored value on upsert.
    """

    # === Identification ===
    node_id: str = Field(
        min_length=1,
        max_length=255,
        description="Stable connection identifier reported by the node"
    )
    name: str = Field(default="", max_length=255, description="Human-readable node name")
    version: str = Field(default="", max_length=64, description="Agent software version")

    # === Host ===
    ip_address: str = Field(default="", max_length=64, description="Reported IP address")
    hostname: str = Field(default="", max_length=255, description="Reported hostname")
    os_name: str = Field(default="", max_length=128, description="Operating system")

    # === State ===
    online: bool = Field(default=False, description="Live connection session active")
    pending_delete: bool = Field(default=False, description="Flagged for removal")

    # === Query engine capability ===
    query_engine_enabled: bool = Field(default=False, description="Query engine available")
    query_engine_version: Optional[str] = Field(None, max_length=64)
    query_engine_config_path: Optional[str] = Field(None)

    @field_validator("node_id")
    @classmethod
    def validate_node_id(cls, v: str) -> str:
        """Reject blank identifiers."""
        if not v.strip():
            raise ValueError("node_id must not be blank")
        return v

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "node_id": "7c0d5c8e-4a61-4f1e-9d7a-2b3f8f6c1a90",
                    "name": "web-01",
                    "version": "0.4.2",
                    "ip_address": "10.0.3.17",
                    "hostname": "web-01.internal",
                    "os_name": "linux",
                    "online": True,
                    "query_engine_enabled": True,
                    "query_engine_version": "5.10.2",
                    "query_engine_config_path": "/etc/osquery/osquery.conf",
                }
            ]
        }


class NodeRecord(NodeAnnouncement):
    """A node as stored in the registry."""

    id: int = Field(ge=1, description="Surrogate key assigned by the store")
    created_at: datetime = Field(description="Insert time")
    updated_at: datetime = Field(description="Last mutation time")

    def to_announcement(self) -> NodeAnnouncement:
        """Drop store-owned fields."""
        return NodeAnnouncement(**self.model_dump(exclude={"id", "created_at", "updated_at"}))


# =============================================================================
# SQLAlchemy Models (for database persistence)
# =============================================================================

Base = declarative_base()

# Fields copied from an announcement or record on every overwrite.
MUTABLE_FIELDS = (
    "name",
    "version",
    "ip_address",
    "hostname",
    "os_name",
    "online",
    "query_engine_enabled",
    "query_engine_version",
    "query_engine_config_path",
    "pending_delete",
)


class NodeModel(Base):
    """
    SQLAlchemy model for a known node.

    id and node_id are immutable once the row exists.
    """
    __tablename__ = "nodes"
    __table_args__ = {"sqlite_autoincrement": True}

    # Keys
    id = Column(Integer, primary_key=True, autoincrement=True)
    node_id = Column(String(255), nullable=False, unique=True, index=True)

    # Descriptive metadata
    name = Column(String(255), nullable=False, default="")
    version = Column(String(64), nullable=False, default="")
    ip_address = Column(String(64), nullable=False, default="")
    hostname = Column(String(255), nullable=False, default="")
    os_name = Column(String(128), nullable=False, default="")

    # Connection state
    online = Column(Boolean, nullable=False, default=False)

    # Query engine capability
    query_engine_enabled = Column(Boolean, nullable=False, default=False)
    query_engine_version = Column(String(64), nullable=True)
    query_engine_config_path = Column(Text, nullable=True)

    # Lifecycle
    pending_delete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def apply(self, source: NodeAnnouncement, now: Optional[datetime] = None) -> None:
        """Overwrite every mutable column from an announcement or record."""
        for field in MUTABLE_FIELDS:
            setattr(self, field, getattr(source, field))
        self.updated_at = now or datetime.utcnow()

    def to_record(self) -> NodeRecord:
        """Convert SQLAlchemy model to Pydantic NodeRecord."""
        return NodeRecord(
            id=self.id,
            node_id=self.node_id,
            name=self.name,
            version=self.version,
            ip_address=self.ip_address,
            hostname=self.hostname,
            os_name=self.os_name,
            online=self.online,
            query_engine_enabled=self.query_engine_enabled,
            query_engine_version=self.query_engine_version,
            query_engine_config_path=self.query_engine_config_path,
            pending_delete=self.pending_delete,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_announcement(cls, announcement: NodeAnnouncement) -> "NodeModel":
        """Create a new row for a node seen for the first time."""
        now = datetime.utcnow()
        return cls(
            node_id=announcement.node_id,
            name=announcement.name,
            version=announcement.version,
            ip_address=announcement.ip_address,
            hostname=announcement.hostname,
            os_name=announcement.os_name,
            online=announcement.online,
            query_engine_enabled=announcement.query_engine_enabled,
            query_engine_version=announcement.query_engine_version,
            query_engine_config_path=announcement.query_engine_config_path,
            pending_delete=False,
            created_at=now,
            updated_at=now,
        )

    def __repr__(self) -> str:
        return f"<NodeModel id={self.id} node_id={self.node_id!r} online={self.online}>"
