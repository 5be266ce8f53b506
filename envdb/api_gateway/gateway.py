"""
API Gateway - read-only HTTP inventory of the node registry.

Provides REST API endpoints for:
- GET /nodes - list all known nodes
- GET /nodes/{node_id} - get one node
- GET /status - record counts

No endpoint mutates the registry.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..registry.errors import NodeNotFoundError, StoreError
from ..registry.models import NodeRecord
from ..registry.node_store import NodeStore

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# =============================================================================
# Response Models
# =============================================================================

class NodeResponse(BaseModel):
    """Node record as returned over HTTP."""
    id: int
    node_id: str
    name: str
    version: str
    ip_address: str
    hostname: str
    os_name: str
    online: bool
    query_engine_enabled: bool
    query_engine_version: Optional[str] = None
    query_engine_config_path: Optional[str] = None
    pending_delete: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: NodeRecord) -> "NodeResponse":
        return cls(**record.model_dump())


class StatusResponse(BaseModel):
    """Registry status response."""
    status: str
    nodes: Dict[str, int]


# =============================================================================
# API Gateway Class
# =============================================================================

class APIGateway:
    """
    Inventory gateway over a NodeStore.

    Translates store exceptions into HTTP errors.
    """

    def __init__(self, store: NodeStore):
        self.store = store
        logger.info("APIGateway initialized")

    def list_nodes(self) -> List[NodeResponse]:
        """List all nodes."""
        try:
            records = self.store.find_all()
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [NodeResponse.from_record(r) for r in records]

    def get_node(self, node_id: str) -> NodeResponse:
        """Get node by node_id."""
        try:
            record = self.store.find_by_node_id(node_id)
        except NodeNotFoundError:
            raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return NodeResponse.from_record(record)

    def get_status(self) -> StatusResponse:
        """Get registry status."""
        try:
            stats = self.store.get_stats()
        except StoreError as e:
            logger.error(f"Status check failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return StatusResponse(status="healthy", nodes=stats)


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(store: NodeStore) -> FastAPI:
    """Create FastAPI application."""

    gateway = APIGateway(store)

    app = FastAPI(
        title="envdb node registry",
        description="Read-only inventory of known nodes",
        version=API_VERSION,
    )

    # Store gateway instance
    app.state.gateway = gateway

    # ==========================================================================
    # Routes
    # ==========================================================================

    @app.get("/")
    async def root():
        """API root."""
        return {
            "name": "envdb node registry",
            "version": API_VERSION,
            "endpoints": {
                "nodes": "/nodes",
                "node": "/nodes/{node_id}",
                "status": "/status",
            }
        }

    @app.get("/nodes", response_model=List[NodeResponse])
    def list_nodes():
        """List all nodes."""
        return gateway.list_nodes()

    @app.get("/nodes/{node_id}", response_model=NodeResponse)
    def get_node(node_id: str):
        """Get node by node_id."""
        return gateway.get_node(node_id)

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        """Get registry status."""
        return gateway.get_status()

    return app
