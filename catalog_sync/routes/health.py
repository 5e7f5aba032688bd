from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync import __version__
from catalog_sync.dependencies import get_db, get_vendor_registry
from catalog_sync.services.vendor_sync.registry import VendorRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(registry: VendorRegistry = Depends(get_vendor_registry)):
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "Vendor Catalog Sync",
        "version": __version__,
        "vendors": registry.slugs(),
    }


@router.get("/health/db")
async def database_health(db: AsyncSession = Depends(get_db)):
    """Check database connectivity"""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e)
        }
