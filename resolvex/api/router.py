"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.
"""

from __future__ import annotations

from fastapi import APIRouter

from resolvex.api.v1 import complaints, health, users

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(complaints.router)
api_router.include_router(users.router)
api_router.include_router(health.router)
