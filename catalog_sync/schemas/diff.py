"""
Diff structures exchanged between the diff engine, the applier and the API.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from catalog_sync.schemas.base import CamelSchema
from catalog_sync.schemas.normalized import NormalizedProduct

# Fields compared between a stored product and its catalog projection,
# as (attribute, external name) pairs
COMPARED_FIELDS = (
    ("name", "name"),
    ("brand", "brand"),
    ("model", "model"),
    ("color", "color"),
    ("size_label", "sizeLabel"),
    ("usage", "usage"),
    ("category", "category"),
    ("catalog_url", "catalogUrl"),
    ("supplier", "supplier"),
)


class ProductSnapshot(CamelSchema):
    """A product row, either stored (before) or projected from the catalog (after)."""
    id: Optional[int] = None
    sku: str
    catalog_id: Optional[str] = None
    variant_id: Optional[str] = None
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None
    size_label: Optional[str] = None
    category: str
    usage: Optional[str] = None
    barcode: Optional[str] = None
    catalog_url: Optional[str] = None
    supplier: Optional[str] = None
    delisted: bool = False


class StoredStock(CamelSchema):
    id: int
    store_id: str
    product_id: int
    qty: int
    barcode: Optional[str] = None


class CatalogSnapshot(CamelSchema):
    """Persisted products of one vendor with their stock rows keyed by product id."""
    vendor: str
    products: List[ProductSnapshot] = Field(default_factory=list)
    stocks: Dict[int, List[StoredStock]] = Field(default_factory=dict)

    def stocks_for(self, product_id: Optional[int]) -> List[StoredStock]:
        if product_id is None:
            return []
        return self.stocks.get(product_id, [])


class FieldChange(CamelSchema):
    field: str
    before: Any = None
    after: Any = None


class StockLevel(CamelSchema):
    qty: int = 0
    barcode: Optional[str] = None


class StockChange(CamelSchema):
    store_stock_id: Optional[int] = None
    store_id: str
    before: StockLevel
    after: StockLevel
    changed: bool


class ProductDiff(CamelSchema):
    before: Optional[ProductSnapshot] = None
    after: ProductSnapshot
    changes: List[FieldChange] = Field(default_factory=list)


class DiffItem(CamelSchema):
    catalog_id: str
    variant_id: Optional[str] = None
    sku: str
    status: Literal["new", "updated", "unchanged"]
    product: ProductDiff
    stocks: List[StockChange] = Field(default_factory=list)
    normalized: NormalizedProduct

    def to_api(self, **kwargs) -> Dict[str, Any]:
        payload = super().to_api(exclude={"normalized"}, **kwargs)
        payload["normalized"] = self.normalized.without_raw()
        return payload


class RemovedStock(CamelSchema):
    store_stock_id: int
    store_id: str
    qty: int
    barcode: Optional[str] = None


class RemovedItem(CamelSchema):
    catalog_id: str
    product_id: Optional[int] = None
    sku: Optional[str] = None
    stocks: List[RemovedStock] = Field(default_factory=list)


class DiffCounts(CamelSchema):
    total: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0


class DiffResult(CamelSchema):
    vendor: str
    hash: str
    counts: DiffCounts
    items: List[DiffItem] = Field(default_factory=list)
    removed: List[RemovedItem] = Field(default_factory=list)

    def to_api(self, **kwargs) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "counts": self.counts.to_api(),
            "items": [item.to_api() for item in self.items],
            "removed": [entry.to_api() for entry in self.removed],
        }


class RunSummary(CamelSchema):
    vendor: str
    hash: str
    total: int
    created: int
    updated: int
    unchanged: int
    removed: int
    dry_run: bool
    duration_ms: int
    finished_at: str
    source_path: Optional[str] = None
