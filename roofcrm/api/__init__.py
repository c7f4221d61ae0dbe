"""API router aggregation."""

from fastapi import APIRouter

from roofcrm.api.admin import admin_router
from roofcrm.api.health import router as health_router

# Main API router (for /api/* endpoints)
api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(admin_router)

__all__ = ["api_router"]
