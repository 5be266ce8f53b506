"""
API Gateway for envdb.

Provides read-only HTTP endpoints for:
- Node inventory
- Registry status
"""

from .gateway import create_app, APIGateway

__all__ = ["create_app", "APIGateway"]
