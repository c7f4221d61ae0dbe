"""Admin API router aggregation."""

from fastapi import APIRouter

from roofcrm.api.admin.commission_plans import router as commission_plans_router
from roofcrm.api.admin.commissions import router as commissions_router
from roofcrm.api.admin.location_commissions import router as location_commissions_router
from roofcrm.api.admin.revenue_events import router as revenue_events_router
from roofcrm.api.admin.team_lead_commissions import router as team_lead_commissions_router

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

admin_router.include_router(commission_plans_router)
admin_router.include_router(location_commissions_router)
admin_router.include_router(commissions_router)
admin_router.include_router(team_lead_commissions_router)
admin_router.include_router(revenue_events_router)

__all__ = ["admin_router"]
