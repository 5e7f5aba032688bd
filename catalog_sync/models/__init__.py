from .vendor import Vendor, VendorIntegration
from .product import Product
from .store_stock import StoreStock
from .vendor_sync_run import VendorSyncRun, VendorSyncRunDiff
from .vendor_sync_state import VendorSyncState

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Vendor',
    'VendorIntegration',
    'Product',
    'StoreStock',
    'VendorSyncRun',
    'VendorSyncRunDiff',
    'VendorSyncState',
]
