#!/usr/bin/env python3
"""
Tests for API Gateway.

Tests the read-only HTTP inventory of the node registry.
"""

import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi.testclient import TestClient

from envdb.api_gateway.gateway import create_app
from envdb.registry.errors import StoreError


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def client(store):
    """Create a test client over the test store."""
    app = create_app(store)
    return TestClient(app)


@pytest.fixture
def populated(store, make_announcement):
    store.upsert_from_announcement(make_announcement("n1", name="agent1", online=True))
    store.upsert_from_announcement(make_announcement("n2", name="agent2", online=False))
    return store


# =============================================================================
# Root Endpoint Tests
# =============================================================================

class TestRootEndpoint:
    """Tests for root endpoint."""

    def test_root_returns_api_info(self, client):
        """Root endpoint returns API information."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "envdb node registry"
        assert "/nodes" in data["endpoints"].values()
        assert "/status" in data["endpoints"].values()


# =============================================================================
# Node Endpoint Tests
# =============================================================================

class TestNodeEndpoints:
    """Tests for /nodes."""

    def test_list_empty(self, client):
        response = client.get("/nodes")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_nodes(self, client, populated):
        response = client.get("/nodes")
        assert response.status_code == 200
        data = response.json()
        assert [n["node_id"] for n in data] == ["n1", "n2"]
        assert data[0]["online"] is True
        assert data[1]["online"] is False

    def test_get_node(self, client, populated):
        response = client.get("/nodes/n1")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "agent1"
        assert data["pending_delete"] is False
        assert "created_at" in data

    def test_get_unknown_node(self, client):
        """Unknown node_id is a 404, not a server error."""
        response = client.get("/nodes/unknown")
        assert response.status_code == 404
        assert "unknown" in response.json()["detail"]

    def test_store_failure_is_503(self, client, store):
        with patch.object(store, "find_all", side_effect=StoreError("Listing nodes failed")):
            response = client.get("/nodes")
        assert response.status_code == 503

    def test_lookup_failure_is_503(self, client, store):
        with patch.object(store, "find_by_node_id", side_effect=StoreError("Lookup failed")):
            response = client.get("/nodes/n1")
        assert response.status_code == 503

    def test_read_only(self, client, populated):
        """No route accepts writes."""
        assert client.post("/nodes", json={"node_id": "n3"}).status_code == 405
        assert client.delete("/nodes/n1").status_code == 405


# =============================================================================
# Status Endpoint Tests
# =============================================================================

class TestStatusEndpoint:

    def test_status_counts(self, client, populated):
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["nodes"]["total_nodes"] == 2
        assert data["nodes"]["online_nodes"] == 1

    def test_status_store_failure(self, client, store):
        with patch.object(store, "get_stats", side_effect=StoreError("Listing nodes failed")):
            response = client.get("/status")
        assert response.status_code == 503
