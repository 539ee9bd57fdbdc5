"""
Gym Membership Service - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.config import settings
from app.database import init_db, close_db, async_session_factory
from app.utils.error_handling import (
    setup_exception_handlers,
    ErrorTrackingMiddleware,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_default_plans():
    """
    Seed the starter plan catalog on startup.
    Does nothing once any plan exists.
    """
    from app.services.plan_catalog_service import PlanCatalogService

    async with async_session_factory() as session:
        service = PlanCatalogService(session)
        created = await service.seed_default_plans()
        if created:
            logger.info(f"Plan catalog seeded with {created} plans")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    if settings.seed_default_plans:
        try:
            await seed_default_plans()
        except Exception as e:
            logger.warning(f"Plan catalog seeding skipped: {e}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Membership plans, proration, plan changes, pause/resume and cancellation for the gym app",
    version="0.1.0",
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error tracking and standardized error responses
app.add_middleware(ErrorTrackingMiddleware)
setup_exception_handlers(app)


# ===========================================
# API ROUTES
# ===========================================

@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
        "environment": settings.app_env,
        "api_docs": "/api/docs" if settings.is_development else "disabled",
    }


@app.get("/health")
@app.get("/api/v1/health")
async def health_check():
    """Health check endpoint."""
    database = "connected"
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database,
    }


@app.get("/api/v1")
async def api_root():
    """API v1 root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name} API v1",
        "endpoints": {
            "plans": "/api/v1/plans",
            "membership": "/api/v1/membership",
            "plan_change": "/api/v1/plan-change",
            "subscription": "/api/v1/subscription",
        }
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

from app.routers import plans, membership, plan_change, subscription

app.include_router(plans.router, prefix="/api/v1/plans", tags=["Plan Catalog"])
app.include_router(membership.router, prefix="/api/v1/membership", tags=["Membership"])
app.include_router(plan_change.router, prefix="/api/v1/plan-change", tags=["Plan Change"])
app.include_router(subscription.router, prefix="/api/v1/subscription", tags=["Subscription"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
