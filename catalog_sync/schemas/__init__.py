"""
Schema exports for the application.
"""

from .base import BaseSchema, CamelSchema
from .normalized import NormalizedProduct, VendorRef
from .diff import (
    CatalogSnapshot,
    DiffCounts,
    DiffItem,
    DiffResult,
    ProductSnapshot,
    RemovedItem,
    RunSummary,
    StockChange,
)
from .vendor_sync import RunRead, SyncRequest, VendorCreate, VendorRead
