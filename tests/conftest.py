# tests/conftest.py
import os

# The application engine is built at import time; point it at SQLite before importing
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import catalog_sync.models  # noqa: F401  registers the tables on Base.metadata
from catalog_sync.core.config import Settings, get_settings
from catalog_sync.database import Base
from catalog_sync.dependencies import get_db, get_vendor_registry
from catalog_sync.main import app
from catalog_sync.services.vendor_sync.adapters.base import CatalogAdapter
from catalog_sync.services.vendor_sync.adapters.moscot import MoscotAdapter
from catalog_sync.services.vendor_sync.registry import VendorRegistry

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings():
    """Test settings: no service tokens, instant retries"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        ENVIRONMENT="test",
        DEFAULT_VENDOR_SLUG="moscot",
        CATALOG_VENDORS="acme=Acme Optical",
        APPLY_MAX_ATTEMPTS=3,
        APPLY_RETRY_BASE_DELAY=0,
        SERVICE_TOKENS={},
    )


@pytest.fixture
def registry():
    """Registry with the built-in MOSCOT adapter and a generic 'acme' vendor"""
    registry = VendorRegistry()
    registry.register_adapter(MoscotAdapter())
    registry.register_adapter(CatalogAdapter(slug="acme", name="Acme Optical"))
    return registry


@pytest.fixture(scope="function")
async def test_engine():
    """In-memory SQLite engine with the schema created (function-scoped)."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def test_client(session_factory, registry, settings):
    """
    Async HTTP client bound to the app with the test database, registry and
    settings. Unhandled errors come back as 500 responses.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_vendor_registry] = lambda: registry
    app.dependency_overrides[get_settings] = lambda: settings

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()


# Payloads ------------------------------------------------------------------

@pytest.fixture
def frame_payload():
    """Minimal acme frame with one black variant"""
    return {
        "catalogId": "A-1",
        "category": "Frames",
        "variants": [{"sku": "SKU-1", "color": {"name": "Black"}}],
    }


@pytest.fixture
def moscot_payload():
    """A realistic MOSCOT scraper export entry"""
    return {
        "catalogId": "lemtosh",
        "name": "LEMTOSH",
        "brand": "MOSCOT",
        "model": "Lemtosh",
        "category": "Sunglasses",
        "tags": ["classic", "", 3],
        "collections": ["Originals"],
        "descriptionHtml": "<p>The icon.</p>",
        "photos": [
            {"url": "https://cdn.moscot.com/files/lemtosh_side.jpg", "angle": "side"},
            {"url": "https://cdn.moscot.com/files/lemtosh_front.jpg", "angle": "Front", "source": "catalog"},
            {"url": "https://cdn.moscot.com/files/lemtosh_front_small.jpg", "angle": "front"},
            {"url": "https://cdn.moscot.com/files/moscot-logo.png"},
            {"url": "https://cdn.moscot.com/collections/summer.jpg"},
            {"url": "https://cdn.moscot.com/other/LEMTOSH_SIDE.jpg", "angle": "side"},
            {"url": "ftp://cdn.moscot.com/files/lemtosh_temple.jpg", "angle": "temple"},
            {"url": "https://cdn.moscot.com/files/lemtosh_temple.jpg", "angle": "hinge"},
        ],
        "source": {
            "url": "https://moscot.com/products/lemtosh",
            "lastSyncISO": "2024-03-01T10:00:00Z",
            "supplier": "MOSCOT NYC",
            "confidence": "high",
        },
        "price": {"amount": "320", "currency": "USD"},
        "variants": [
            {
                "id": "lemtosh-black-46",
                "sku": "MOS-LEM-BLK-46",
                "barcode": "0123456789",
                "color": "Black",
                "fit": "WIDE",
                "usage": "optical-sun",
                "size": {"lens": 46, "bridge": 24, "temple": 145},
                "attributes": {"qty": 4},
            },
            {
                "sku": "MOS-LEM-TOR-49",
                "color": {"name": "Tortoise", "finish": "gloss"},
                "fit": "roomy",
                "usage": "sun",
                "measurements": {"lensWidth": 49, "bridge": "24", "temple": 145},
            },
        ],
        "vendorNotes": {"restock": "spring"},
    }
