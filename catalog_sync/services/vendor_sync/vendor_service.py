"""
Vendor onboarding and integration checks.

Vendor records complement the adapter registry: a vendor may be registered
(has an adapter), onboarded (has a row), or both.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import IntegrationType
from catalog_sync.core.exceptions import CatalogSourceError, NotFoundError, SlugConflictError
from catalog_sync.core.utils import to_iso, utcnow
from catalog_sync.models import Vendor, VendorIntegration, VendorSyncState
from catalog_sync.schemas.vendor_sync import (
    ConnectionTestResult,
    IntegrationRead,
    RegistryTestSummary,
    VendorCreate,
    VendorRead,
    VendorStateRead,
)
from catalog_sync.services.vendor_sync.catalog_loader import locate_catalog
from catalog_sync.services.vendor_sync.registry import VendorRegistry, get_registry, normalize_slug

logger = logging.getLogger(__name__)


class VendorService:
    """Service for vendor records and their integrations."""

    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[VendorRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.registry = registry or get_registry()
        self.settings = settings or get_settings()

    async def _get_vendor_row(self, slug: str) -> Optional[Vendor]:
        result = await self.db.execute(select(Vendor).where(Vendor.slug == slug))
        return result.scalar_one_or_none()

    async def _states(self, slugs: List[str]) -> Dict[str, VendorSyncState]:
        if not slugs:
            return {}
        result = await self.db.execute(select(VendorSyncState).where(VendorSyncState.vendor.in_(slugs)))
        return {state.vendor: state for state in result.scalars().all()}

    def _serialize(self, slug: str, vendor: Optional[Vendor], state: Optional[VendorSyncState]) -> VendorRead:
        adapter = self.registry.get_adapter(slug)
        return VendorRead(
            id=vendor.id if vendor else None,
            slug=slug,
            name=vendor.name if vendor else self.registry.vendor_label(slug),
            adapter_key=adapter.key if adapter else None,
            registered=adapter is not None,
            created_at=to_iso(vendor.created_at) if vendor else None,
            updated_at=to_iso(vendor.updated_at) if vendor else None,
            integration=IntegrationRead.from_integration(vendor.integration) if vendor else None,
            state=VendorStateRead.from_state(state),
        )

    async def list_vendors(self) -> List[VendorRead]:
        """Onboarded and registered vendors, sorted by slug."""
        result = await self.db.execute(select(Vendor).order_by(Vendor.slug))
        rows = {vendor.slug: vendor for vendor in result.scalars().all()}
        slugs = sorted(set(rows) | set(self.registry.slugs()))
        states = await self._states(slugs)
        return [self._serialize(slug, rows.get(slug), states.get(slug)) for slug in slugs]

    async def get_vendor(self, slug: str) -> Optional[VendorRead]:
        slug = normalize_slug(slug)
        if not slug:
            return None
        vendor = await self._get_vendor_row(slug)
        if vendor is None and slug not in self.registry:
            return None
        states = await self._states([slug])
        return self._serialize(slug, vendor, states.get(slug))

    async def create_vendor(self, data: VendorCreate) -> VendorRead:
        """
        Onboard a vendor with its integration.

        Raises:
            SlugConflictError: a vendor with this slug already exists
        """
        if await self._get_vendor_row(data.slug) is not None:
            raise SlugConflictError(f"Vendor slug '{data.slug}' is already in use")

        credentials = data.credentials
        vendor = Vendor(slug=data.slug, name=data.name)
        vendor.integration = VendorIntegration(
            type=data.integration_type.value,
            scraper_path=credentials.scraper_path if credentials else None,
            api_base_url=credentials.api_base_url if credentials else None,
            api_auth_type="bearer" if credentials and credentials.api_key else None,
            api_key=credentials.api_key if credentials else None,
        )
        self.db.add(vendor)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise SlugConflictError(f"Vendor slug '{data.slug}' is already in use")
        except Exception as e:
            logger.error(f"Failed to create vendor {data.slug}: {e}", exc_info=True)
            await self.db.rollback()
            raise

        await self.db.refresh(vendor, attribute_names=["integration"])
        logger.info(f"Onboarded vendor {vendor.slug} ({data.integration_type.value})")
        return self._serialize(vendor.slug, vendor, None)

    # Connection tests --------------------------------------------------

    async def _check(self, vendor: Vendor, source_override: Optional[str] = None) -> ConnectionTestResult:
        """Probe one integration; never raises for integration failures."""
        integration = vendor.integration
        base = dict(
            vendor=vendor.slug,
            vendor_name=vendor.name,
            integration_id=integration.id,
            type=integration.type,
        )
        try:
            if integration.type == IntegrationType.SCRAPER.value:
                if vendor.slug not in self.registry:
                    raise CatalogSourceError(f"No catalog adapter registered for vendor {vendor.slug}")
                catalog = await locate_catalog(
                    vendor.slug,
                    explicit=source_override,
                    configured=integration.scraper_path,
                    settings=self.settings,
                )
                meta = {"sourcePath": catalog.source_path, "totalItems": len(catalog.items)}
            elif integration.type == IntegrationType.API.value:
                meta = await self._check_api(integration)
            else:
                raise CatalogSourceError(f"Unsupported integration type {integration.type}")
        except (CatalogSourceError, httpx.HTTPError) as e:
            return ConnectionTestResult(ok=False, checked_at=to_iso(utcnow()), meta={"error": str(e)}, **base)

        return ConnectionTestResult(ok=True, checked_at=to_iso(utcnow()), meta=meta, **base)

    async def _check_api(self, integration: VendorIntegration) -> dict:
        if not integration.api_base_url:
            raise CatalogSourceError("API integration has no base URL")
        headers = {"Accept": "application/json"}
        if integration.api_key:
            headers["Authorization"] = f"Bearer {integration.api_key}"

        async with httpx.AsyncClient(timeout=self.settings.SOURCE_FETCH_TIMEOUT) as client:
            response = await client.get(integration.api_base_url, headers=headers)
        if response.status_code >= 400:
            raise CatalogSourceError(f"API responded with HTTP {response.status_code}")
        return {"url": integration.api_base_url, "status": response.status_code}

    async def _record(self, vendor: Vendor, result: ConnectionTestResult) -> None:
        integration = vendor.integration
        integration.last_test_at = utcnow()
        integration.last_test_ok = result.ok
        integration.meta = result.meta
        try:
            await self.db.commit()
        except Exception as e:
            logger.error(f"Failed to record connection test of {vendor.slug}: {e}", exc_info=True)
            await self.db.rollback()
            raise

    async def _configured_vendor(self, slug: str) -> Vendor:
        vendor = await self._get_vendor_row(normalize_slug(slug))
        if vendor is None or vendor.integration is None:
            raise NotFoundError(f"Vendor {slug} is not configured")
        return vendor

    async def test_integration(self, slug: str, source_override: Optional[str] = None) -> ConnectionTestResult:
        """Check one vendor integration and store the outcome on it."""
        vendor = await self._configured_vendor(slug)
        result = await self._check(vendor, source_override)
        await self._record(vendor, result)
        if not result.ok:
            logger.warning(f"Connection test failed for {vendor.slug}: {result.meta.get('error')}")
        return result

    async def test_all(self) -> RegistryTestSummary:
        """
        Check every configured integration; probes run concurrently (bounded by
        REGISTRY_TEST_CONCURRENCY), outcomes are stored one by one.
        """
        result = await self.db.execute(select(Vendor).order_by(Vendor.slug))
        vendors = [vendor for vendor in result.scalars().all() if vendor.integration is not None]

        semaphore = asyncio.Semaphore(max(1, self.settings.REGISTRY_TEST_CONCURRENCY))

        async def bounded(vendor: Vendor) -> ConnectionTestResult:
            async with semaphore:
                return await self._check(vendor)

        outcomes = await asyncio.gather(*(bounded(vendor) for vendor in vendors))

        summary = RegistryTestSummary(tested=len(outcomes))
        for vendor, outcome in zip(vendors, outcomes):
            await self._record(vendor, outcome)
            if outcome.ok:
                summary.passed += 1
            else:
                summary.failed += 1
                summary.failures.append({"vendor": vendor.slug, "error": str(outcome.meta.get("error", "unknown error"))})

        logger.info(f"Tested {summary.tested} vendor integrations: {summary.passed} passed, {summary.failed} failed")
        return summary
