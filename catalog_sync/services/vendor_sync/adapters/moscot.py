"""
MOSCOT catalog adapter.

The MOSCOT scraper exports Shopify product pages, so besides the generic
non-product imagery it also drops Shopify thumbnail renditions and
collection banners.
"""

import posixpath
import re
from typing import Any, Dict
from urllib.parse import urlparse

from catalog_sync.core.utils import clean_str
from catalog_sync.services.vendor_sync.adapters.base import CatalogAdapter

MOSCOT_SLUG = "moscot"
MOSCOT_NAME = "MOSCOT"
MOSCOT_ADAPTER_KEY = "moscot.catalog"

# Shopify size suffixes: lemtosh_front_small.jpg, lemtosh_front_100x.jpg
_SHOPIFY_THUMBNAIL = re.compile(r"_(pico|icon|thumb|small|compact|\d{1,3}x\d{0,3})\.[a-z0-9]+$", re.IGNORECASE)


class MoscotAdapter(CatalogAdapter):

    def __init__(self):
        super().__init__(slug=MOSCOT_SLUG, name=MOSCOT_NAME, key=MOSCOT_ADAPTER_KEY)

    def is_product_photo(self, url: str) -> bool:
        if not super().is_product_photo(url):
            return False
        path = urlparse(url).path.lower()
        if "/collections/" in path or "/banners/" in path:
            return False
        return not _SHOPIFY_THUMBNAIL.search(posixpath.basename(path))

    def source_fields(self, source: Dict[str, Any]) -> Dict[str, Any]:
        # The scraper stamps lastSyncISO and names the supplier
        return {
            "url": source.get("url"),
            "retrievedAt": source.get("lastSyncISO", source.get("retrievedAt")),
            "priceList": None,
            "note": clean_str(source.get("supplier")),
        }
