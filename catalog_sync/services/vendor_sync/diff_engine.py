"""
Diff Engine

Compares a normalized catalog batch with the persisted products of a vendor.
Pure and synchronous: the snapshot is read beforehand by the applier.

Each variant of a normalized product becomes one projected inventory row,
identified by its SKU. Rows are classified new / updated / unchanged, stock
levels are compared per store, and stored products missing from the batch
are reported as removed.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from catalog_sync.core.enums import DiffStatus, InventoryCategory, NormalizedCategory, Usage
from catalog_sync.core.utils import clean_str, sha256_hex
from catalog_sync.schemas.diff import (
    COMPARED_FIELDS,
    CatalogSnapshot,
    DiffCounts,
    DiffItem,
    DiffResult,
    FieldChange,
    ProductDiff,
    ProductSnapshot,
    RemovedItem,
    RemovedStock,
    StockChange,
    StockLevel,
)
from catalog_sync.schemas.normalized import NormalizedProduct

logger = logging.getLogger(__name__)

NAME_SEPARATOR = " — "
EXTRAS_SEPARATOR = " · "

# Excluded from the content hash: they change when a diff is applied
_HASH_EXCLUDED_FIELDS = {"id", "delisted"}


def _legacy_product_sku(product: NormalizedProduct) -> Optional[str]:
    if isinstance(product.raw, dict):
        return clean_str(product.raw.get("sku"))
    return None


def stable_sku(product: NormalizedProduct, variant, index: int, used: set) -> str:
    """
    Deterministic SKU of one variant.

    variant.sku, else the product level sku, else the catalog id. Empty or
    already used within the product (case-insensitive) -> "<catalogId>-<n>",
    with n counting up from index+1 until unused.
    """
    candidate = clean_str(variant.sku) or _legacy_product_sku(product) or clean_str(product.catalog_id) or ""
    suffix = index + 1
    while not candidate or candidate.lower() in used:
        candidate = f"{product.catalog_id.strip()}-{suffix}"
        suffix += 1
    used.add(candidate.lower())
    return candidate


def _format_measure(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return str(int(value)) if float(value).is_integer() else str(value)


def _size_label(variant) -> Optional[str]:
    label = clean_str(getattr(variant, "size_label", None))
    if label:
        return label
    measurements = getattr(variant, "measurements", None)
    if measurements is None:
        return None
    parts = [
        _format_measure(measurements.lens_width),
        _format_measure(measurements.bridge),
        _format_measure(measurements.temple),
    ]
    parts = [part for part in parts if part]
    return "-".join(parts) or None


def _usage(product: NormalizedProduct, variant) -> Optional[str]:
    if product.category in (NormalizedCategory.LENSES.value, NormalizedCategory.CONTACTS.value):
        return Usage.OPTICAL.value
    return getattr(variant, "usage", None)


def _inventory_category(product: NormalizedProduct, usage: Optional[str]) -> str:
    if product.category == NormalizedCategory.FRAMES.value:
        if usage == Usage.SUN.value:
            return InventoryCategory.SUNGLASSES.value
        return InventoryCategory.FRAMES.value
    if product.category in (NormalizedCategory.LENSES.value, NormalizedCategory.CONTACTS.value):
        return InventoryCategory.LENSES.value
    return InventoryCategory.ACCESSORIES.value


def _display_name(product: NormalizedProduct, color: Optional[str], size_label: Optional[str]) -> str:
    base = clean_str(product.name)
    if not base:
        base = " ".join(part for part in (clean_str(product.brand), clean_str(product.model)) if part)
    base = base or product.catalog_id.strip()

    lowered = base.lower()
    extras = [extra for extra in (color, size_label) if extra and extra.lower() not in lowered]
    if not extras:
        return base
    return f"{base}{NAME_SEPARATOR}{EXTRAS_SEPARATOR.join(extras)}"


def declared_qty(variant) -> Optional[int]:
    """Stock quantity carried in the variant attributes, if any."""
    attributes = variant.attributes or {}
    for key in ("qty", "stock"):
        value = attributes.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int) and value >= 0:
            return value
        if isinstance(value, float) and value.is_integer() and value >= 0:
            return int(value)
    return None


def project_product(product: NormalizedProduct) -> List[Tuple[Any, ProductSnapshot]]:
    """One (variant, projected row) pair per variant, in variant order."""
    vendor_label = clean_str(product.vendor.name) or product.vendor.slug
    catalog_url = product.source.url if product.source else None
    used: set = set()
    rows = []
    for index, variant in enumerate(product.variants):
        color_obj = getattr(variant, "color", None)
        color = clean_str(color_obj.name) if color_obj is not None else None
        size_label = _size_label(variant)
        usage = _usage(product, variant)
        rows.append((variant, ProductSnapshot(
            sku=stable_sku(product, variant, index, used),
            catalog_id=product.catalog_id,
            variant_id=variant.id,
            name=_display_name(product, color, size_label),
            brand=clean_str(product.brand) or vendor_label,
            model=clean_str(product.model),
            color=color,
            size_label=size_label,
            category=_inventory_category(product, usage),
            usage=usage,
            barcode=clean_str(variant.barcode),
            catalog_url=catalog_url,
            supplier=vendor_label,
        )))
    return rows


def _field_changes(before: Optional[ProductSnapshot], after: ProductSnapshot) -> List[FieldChange]:
    changes = []
    for attr, external in COMPARED_FIELDS:
        old = getattr(before, attr) if before is not None else None
        new = getattr(after, attr)
        if before is None:
            if new is not None:
                changes.append(FieldChange(field=external, before=None, after=new))
        elif old != new:
            changes.append(FieldChange(field=external, before=old, after=new))
    if before is not None and before.delisted:
        changes.append(FieldChange(field="delisted", before=True, after=False))
    return changes


def _stock_changes(
    snapshot: CatalogSnapshot,
    existing: Optional[ProductSnapshot],
    after: ProductSnapshot,
    qty: Optional[int],
    default_store_id: str,
) -> List[StockChange]:
    stored = snapshot.stocks_for(existing.id if existing else None)
    if not stored:
        target = StockLevel(qty=qty or 0, barcode=after.barcode)
        return [StockChange(
            store_stock_id=None,
            store_id=default_store_id,
            before=StockLevel(qty=0, barcode=None),
            after=target,
            changed=target.qty != 0 or target.barcode is not None,
        )]

    changes = []
    for row in stored:
        before = StockLevel(qty=row.qty, barcode=row.barcode)
        target = StockLevel(qty=row.qty if qty is None else qty, barcode=after.barcode)
        changes.append(StockChange(
            store_stock_id=row.id,
            store_id=row.store_id,
            before=before,
            after=target,
            changed=before.qty != target.qty or before.barcode != target.barcode,
        ))
    return changes


def _hash_payload(vendor: str, items: List[DiffItem], removed: List[RemovedItem]) -> Dict[str, Any]:
    hashed_items = [
        {
            "catalogId": item.catalog_id,
            "sku": item.sku,
            "after": item.product.after.to_api(exclude=_HASH_EXCLUDED_FIELDS),
            "stocks": [
                {"storeId": stock.store_id, "qty": stock.after.qty, "barcode": stock.after.barcode}
                for stock in sorted(item.stocks, key=lambda s: s.store_id)
            ],
        }
        for item in items
    ]
    hashed_items.sort(key=lambda entry: (entry["catalogId"], entry["sku"]))
    hashed_removed = sorted(
        ({"catalogId": entry.catalog_id, "sku": entry.sku or ""} for entry in removed),
        key=lambda entry: (entry["catalogId"], entry["sku"]),
    )
    return {"vendor": vendor, "items": hashed_items, "removed": hashed_removed}


def diff_hash(vendor: str, items: List[DiffItem], removed: List[RemovedItem]) -> str:
    """sha256 of the canonical JSON form of a diff; independent of input order."""
    return sha256_hex(_hash_payload(vendor, items, removed))


def compute_diff(
    vendor: str,
    normalized: List[NormalizedProduct],
    snapshot: CatalogSnapshot,
    default_store_id: str = "main",
) -> DiffResult:
    """
    Diff a normalized batch against the stored snapshot of ``vendor``.

    Items keep input order; a SKU repeated across the batch keeps its first
    row. Stored products missing from the batch are removed unless they are
    already delisted.
    """
    stored_by_sku = {product.sku.lower(): product for product in snapshot.products}

    items: List[DiffItem] = []
    seen_skus = set()
    duplicates = 0

    for product in normalized:
        for variant, after in project_product(product):
            key = after.sku.lower()
            if key in seen_skus:
                duplicates += 1
                continue
            seen_skus.add(key)

            existing = stored_by_sku.get(key)
            if existing is not None:
                after.id = existing.id

            changes = _field_changes(existing, after)
            stocks = _stock_changes(snapshot, existing, after, declared_qty(variant), default_store_id)

            if existing is None:
                status = DiffStatus.NEW
            elif changes or any(stock.changed for stock in stocks):
                status = DiffStatus.UPDATED
            else:
                status = DiffStatus.UNCHANGED

            items.append(DiffItem(
                catalog_id=product.catalog_id,
                variant_id=variant.id,
                sku=after.sku,
                status=status.value,
                product=ProductDiff(before=existing, after=after, changes=changes),
                stocks=stocks,
                normalized=product,
            ))

    if duplicates:
        logger.warning(f"{vendor}: skipped {duplicates} rows with a SKU already present in the batch")

    removed: List[RemovedItem] = []
    for product in snapshot.products:
        if product.sku.lower() in seen_skus or product.delisted:
            continue
        removed.append(RemovedItem(
            catalog_id=product.catalog_id or product.sku,
            product_id=product.id,
            sku=product.sku,
            stocks=[
                RemovedStock(store_stock_id=row.id, store_id=row.store_id, qty=row.qty, barcode=row.barcode)
                for row in snapshot.stocks_for(product.id)
            ],
        ))

    counts = DiffCounts(
        total=len(items),
        created=sum(1 for item in items if item.status == DiffStatus.NEW.value),
        updated=sum(1 for item in items if item.status == DiffStatus.UPDATED.value),
        unchanged=sum(1 for item in items if item.status == DiffStatus.UNCHANGED.value),
        removed=len(removed),
    )

    return DiffResult(
        vendor=vendor,
        hash=diff_hash(vendor, items, removed),
        counts=counts,
        items=items,
        removed=removed,
    )
