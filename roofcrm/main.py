"""
RoofCRM commission engine service.

FastAPI application exposing:
- Commission plans, role defaults and per-location overrides
- The commission ledger (listing, approval, payouts, overrides)
- Revenue event hooks called by the CRM
- Team-lead override commissions
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from roofcrm.api import api_router
from roofcrm.config import settings
from roofcrm.db import engine

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Schema is managed by Alembic; startup only reports configuration.
    """
    logger.info("Starting RoofCRM commission engine...")
    if not settings.push_enabled:
        logger.warning("OneSignal credentials not configured, push notifications disabled")

    yield

    logger.info("Shutting down RoofCRM commission engine...")
    await engine.dispose()


app = FastAPI(
    title="RoofCRM Commissions",
    description="Commission calculation and eligibility engine",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

app.include_router(api_router)  # /api/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "roofcrm.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
    )
