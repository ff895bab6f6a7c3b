"""
ML Seller Sync
Main FastAPI application
"""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.logger import log
from app import __version__

# Import routers
from app.api import health, sync, webhooks

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from app.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for automated account syncs
    from app.scheduler import start_scheduler, stop_scheduler
    try:
        start_scheduler()
    except Exception as e:
        log.error(f"Scheduler startup error: {str(e)}")

    yield

    stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Mercado Livre seller account synchronization

    - Keeps OAuth tokens fresh and flags accounts needing re-authorization
    - Syncs active listings, orders, FULL stock and Product Ads
    - Classifies listings by shipping mode (FULL, FLEX, Agências, Coleta, Correios)
    - Derives sales, shipping mix, reputation and Decola metrics
    - Advances seller milestones from synced data
    """,
    lifespan=lifespan
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(sync.router)
app.include_router(webhooks.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "sync_account": "POST /sync/accounts/{account_id}",
            "sync_all_accounts": "POST /sync/all",
            "sync_progress": "GET /sync/progress",
            "sync_history": "GET /sync/history",
            "webhook": "POST /webhooks/mercado-livre",
            "oauth_callback": "GET /auth/callback",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
