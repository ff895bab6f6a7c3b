"""
Health check and status endpoints
"""
from fastapi import APIRouter
from app.config import get_settings
from app.utils.helpers import utcnow
from app import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    from app.scheduler import get_scheduled_jobs

    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "scheduler": settings.enable_scheduler,
            "product_ads_sync": settings.enable_product_ads_sync,
            "seller_recovery_check": settings.enable_seller_recovery_check,
        },
        "scheduled_jobs": get_scheduled_jobs(),
        "timestamp": utcnow().isoformat()
    }
