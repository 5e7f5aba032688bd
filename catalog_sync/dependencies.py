from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.database import async_session
from catalog_sync.services.vendor_sync.registry import VendorRegistry, get_registry


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_vendor_registry() -> VendorRegistry:
    """Dependency returning the process-wide adapter registry."""
    return get_registry()
