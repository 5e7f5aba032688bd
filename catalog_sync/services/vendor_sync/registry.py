"""
Vendor Registry

Maps a vendor slug to the adapter that normalizes its catalog. The registry
is filled once at startup and only read afterwards.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.exceptions import DuplicateVendorError
from catalog_sync.services.vendor_sync.adapters.base import CatalogAdapter, VendorAdapter
from catalog_sync.services.vendor_sync.adapters.moscot import MoscotAdapter

logger = logging.getLogger(__name__)


def normalize_slug(value: Any) -> str:
    """Trim and lowercase a slug; empty string for anything unusable."""
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


class VendorRegistry:
    """In-process map of vendor slug -> adapter, kept in registration order."""

    def __init__(self):
        self._adapters: Dict[str, VendorAdapter] = {}

    def register_adapter(self, adapter: VendorAdapter) -> VendorAdapter:
        slug = normalize_slug(adapter.vendor.slug)
        if not slug:
            raise ValueError(f"Adapter {adapter.key} has no vendor slug")
        if slug in self._adapters:
            raise DuplicateVendorError(f"Vendor {slug} is already registered")
        self._adapters[slug] = adapter
        logger.debug(f"Registered adapter {adapter.key} for vendor {slug}")
        return adapter

    def get_adapter(self, slug: Any) -> Optional[VendorAdapter]:
        return self._adapters.get(normalize_slug(slug))

    def list(self) -> List[VendorAdapter]:
        return list(self._adapters.values())

    def slugs(self) -> List[str]:
        return list(self._adapters.keys())

    def normalize_slug(self, value: Any) -> str:
        return normalize_slug(value)

    def vendor_label(self, slug: Any) -> str:
        adapter = self.get_adapter(slug)
        if adapter is not None and adapter.vendor.name:
            return adapter.vendor.name
        return slug if isinstance(slug, str) else ""

    def __contains__(self, slug: Any) -> bool:
        return normalize_slug(slug) in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def build_default_registry(settings: Optional[Settings] = None) -> VendorRegistry:
    """
    Registry with the built-in MOSCOT adapter plus one generic catalog
    adapter per configured CATALOG_VENDORS entry.
    """
    settings = settings or get_settings()
    registry = VendorRegistry()
    registry.register_adapter(MoscotAdapter())
    for slug, name in settings.catalog_vendor_pairs:
        if slug in registry:
            logger.warning(f"Skipping configured vendor {slug}: already registered")
            continue
        registry.register_adapter(CatalogAdapter(slug=slug, name=name))
    return registry


@lru_cache()
def get_registry() -> VendorRegistry:
    """Process-wide registry, built on first use."""
    return build_default_registry()
