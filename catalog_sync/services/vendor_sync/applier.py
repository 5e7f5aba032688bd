"""
Catalog Applier

Owns every write to ``product`` and ``store_stock``. A diff is persisted in a
single transaction (products, then stock rows, then removals); dry runs only
read. On Postgres a transaction-scoped advisory lock on the vendor slug keeps
writers of one vendor serial.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import DiffStatus
from catalog_sync.core.exceptions import ApplyError, ConcurrencyConflictError
from catalog_sync.core.utils import to_iso, utcnow
from catalog_sync.models import Product, StoreStock
from catalog_sync.schemas.diff import (
    COMPARED_FIELDS,
    CatalogSnapshot,
    DiffItem,
    DiffResult,
    ProductSnapshot,
    RemovedItem,
    RunSummary,
    StoredStock,
)

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
CONFLICT_SQLSTATES = {"40001", "40P01"}


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None), exc):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def is_conflict(exc: BaseException) -> bool:
    return _sqlstate(exc) in CONFLICT_SQLSTATES


def is_retryable(exc: BaseException) -> bool:
    if is_conflict(exc):
        return True
    return isinstance(exc, OperationalError)


def snapshot_from_product(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=product.id,
        sku=product.sku,
        catalog_id=product.catalog_id,
        variant_id=product.variant_id,
        name=product.name,
        brand=product.brand,
        model=product.model,
        color=product.color,
        size_label=product.size_label,
        category=product.category,
        usage=product.usage,
        catalog_url=product.catalog_url,
        supplier=product.supplier,
        delisted=product.delisted_at is not None,
    )


class CatalogApplier:
    """Reads vendor snapshots and persists diffs."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def read_snapshot(self, vendor: str) -> CatalogSnapshot:
        """Current products of ``vendor`` with their stock rows."""
        result = await self.db.execute(
            select(Product)
            .where(Product.vendor == vendor)
            .order_by(Product.id)
            .execution_options(populate_existing=True)
        )
        products = result.scalars().all()

        stocks: Dict[int, List[StoredStock]] = {}
        product_ids = [product.id for product in products]
        if product_ids:
            stock_result = await self.db.execute(
                select(StoreStock)
                .where(StoreStock.product_id.in_(product_ids))
                .order_by(StoreStock.store_id, StoreStock.id)
                .execution_options(populate_existing=True)
            )
            for row in stock_result.scalars().all():
                stocks.setdefault(row.product_id, []).append(StoredStock(
                    id=row.id,
                    store_id=row.store_id,
                    product_id=row.product_id,
                    qty=row.qty,
                    barcode=row.barcode,
                ))

        return CatalogSnapshot(
            vendor=vendor,
            products=[snapshot_from_product(product) for product in products],
            stocks=stocks,
        )

    async def apply(
        self,
        vendor: str,
        diff: DiffResult,
        dry_run: bool = True,
        actor: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> RunSummary:
        """
        Persist ``diff`` (or simulate it when ``dry_run``).

        Transient failures are retried with exponential backoff; exhausted
        conflicts raise ConcurrencyConflictError, anything else ApplyError
        (including a SKU already owned by another vendor).
        """
        started = time.monotonic()

        if not dry_run:
            await self._apply_with_retry(vendor, diff)
            logger.info(
                f"Applied {vendor} diff {diff.hash[:12]} for {actor or 'service'}: "
                f"{diff.counts.created} created, {diff.counts.updated} updated, {diff.counts.removed} removed"
            )

        return RunSummary(
            vendor=vendor,
            hash=diff.hash,
            total=diff.counts.total,
            created=diff.counts.created,
            updated=diff.counts.updated,
            unchanged=diff.counts.unchanged,
            removed=diff.counts.removed,
            dry_run=dry_run,
            duration_ms=int((time.monotonic() - started) * 1000),
            finished_at=to_iso(utcnow()),
            source_path=source_path,
        )

    async def _apply_with_retry(self, vendor: str, diff: DiffResult) -> None:
        max_attempts = max(1, self.settings.APPLY_MAX_ATTEMPTS)
        for attempt in range(1, max_attempts + 1):
            try:
                await self._write(vendor, diff)
                await self.db.commit()
                return
            except Exception as exc:
                await self.db.rollback()
                if is_retryable(exc) and attempt < max_attempts:
                    delay = self.settings.APPLY_RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Apply of {vendor} failed on attempt {attempt}/{max_attempts} ({exc}); "
                        f"retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                if is_conflict(exc):
                    raise ConcurrencyConflictError(
                        f"Concurrent writers on {vendor}; gave up after {attempt} attempts"
                    ) from exc
                raise ApplyError(f"Failed to apply {vendor} diff: {exc}") from exc

    async def _write(self, vendor: str, diff: DiffResult) -> None:
        if self.db.get_bind().dialect.name == "postgresql":
            await self.db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:vendor))"), {"vendor": vendor})

        now = utcnow()
        for item in diff.items:
            if item.status == DiffStatus.UNCHANGED.value:
                continue
            product = await self._upsert_product(vendor, item, now)
            await self._upsert_stocks(product, item, now)

        for entry in diff.removed:
            await self._delist(entry, now)

    async def _upsert_product(self, vendor: str, item: DiffItem, now) -> Product:
        after = item.product.after
        result = await self.db.execute(select(Product).where(func.lower(Product.sku) == after.sku.lower()))
        product = result.scalars().first()
        if product is None:
            product = Product(sku=after.sku, created_at=now)
            self.db.add(product)
        elif product.vendor and product.vendor != vendor:
            # SKUs are unique across vendors; never rebind another vendor's row
            raise ApplyError(f"SKU {after.sku} already belongs to vendor {product.vendor}")

        product.vendor = vendor
        product.catalog_id = after.catalog_id
        product.variant_id = after.variant_id
        for attr, _ in COMPARED_FIELDS:
            setattr(product, attr, getattr(after, attr))
        product.delisted_at = None
        product.updated_at = now
        await self.db.flush()
        return product

    async def _upsert_stocks(self, product: Product, item: DiffItem, now) -> None:
        for change in item.stocks:
            if not change.changed and change.store_stock_id is not None:
                continue

            row = None
            if change.store_stock_id is not None:
                row = await self.db.get(StoreStock, change.store_stock_id)
            if row is None:
                result = await self.db.execute(
                    select(StoreStock).where(
                        StoreStock.store_id == change.store_id,
                        StoreStock.product_id == product.id,
                    )
                )
                row = result.scalars().first()
            if row is None:
                row = StoreStock(store_id=change.store_id, product_id=product.id)
                self.db.add(row)

            row.qty = change.after.qty
            row.barcode = change.after.barcode
            row.updated_at = now
        await self.db.flush()

    async def _delist(self, entry: RemovedItem, now) -> None:
        if entry.product_id is None:
            return
        product = await self.db.get(Product, entry.product_id)
        if product is None:
            return

        result = await self.db.execute(select(StoreStock).where(StoreStock.product_id == product.id))
        rows = result.scalars().all()
        if not rows:
            self.db.add(StoreStock(
                store_id=self.settings.DEFAULT_STORE_ID,
                product_id=product.id,
                qty=0,
                updated_at=now,
            ))
        for row in rows:
            row.qty = 0
            row.updated_at = now

        product.delisted_at = now
        product.updated_at = now
        await self.db.flush()
