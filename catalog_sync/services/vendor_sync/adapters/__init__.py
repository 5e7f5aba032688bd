from .base import AdapterVendor, CatalogAdapter, CatalogInputSchema, ParseResult, VendorAdapter
from .moscot import MoscotAdapter

__all__ = [
    'AdapterVendor',
    'CatalogAdapter',
    'CatalogInputSchema',
    'ParseResult',
    'VendorAdapter',
    'MoscotAdapter',
]
