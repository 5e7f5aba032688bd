"""
Catalog adapters.

An adapter turns one raw vendor payload into the canonical normalized product
(a camelCase dict validated afterwards by the normalizer). The raw side is
tolerant: only ``catalogId`` and ``category`` are required, everything else is
read when present and well formed, and ignored otherwise.
"""

import copy
import logging
import math
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from catalog_sync.core.enums import (
    CATEGORY_VARIANT_TYPES,
    FrameFit,
    NormalizedCategory,
    PHOTO_ANGLE_PRECEDENCE,
    PhotoAngle,
    Usage,
)
from catalog_sync.core.utils import clean_str
from catalog_sync.schemas.normalized import is_http_url, is_iso_datetime

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "Required"

_FITS = {fit.value for fit in FrameFit}
_USAGES = {usage.value for usage in Usage}
_ANGLES = {angle.value for angle in PhotoAngle}
_BOTH_USAGE_ALIASES = {"optical-sun", "sun-optical"}

# Non-product imagery commonly found in scraped catalog pages
_NON_PRODUCT_IMAGE = re.compile(
    r"(logo|icon|favicon|placeholder|sprite|badge|swatch|pixel|spacer|blank)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class AdapterVendor:
    slug: str
    name: str


@dataclass
class ParseResult:
    """Outcome of CatalogInputSchema.safe_parse."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[ValidationError] = None
    field_errors: Dict[str, List[str]] = field(default_factory=dict)


class RawCatalogProduct(BaseModel):
    """Minimum contract of a raw catalog payload; unknown keys pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    catalog_id: StrictStr = Field(alias="catalogId", min_length=1)
    category: StrictStr = Field(min_length=1)


def validation_field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Flatten a pydantic error into {"dotted.path": [messages]}."""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        message = REQUIRED_MESSAGE if error.get("type") == "missing" else error.get("msg", "Invalid value")
        errors.setdefault(path, []).append(message)
    return errors


class CatalogInputSchema:
    """Tolerant runtime schema for raw catalog payloads."""

    model = RawCatalogProduct

    def safe_parse(self, payload: Any) -> ParseResult:
        try:
            self.model.model_validate(payload)
        except ValidationError as exc:
            return ParseResult(success=False, error=exc, field_errors=validation_field_errors(exc))
        return ParseResult(success=True, data=copy.deepcopy(payload))


# Coercion helpers --------------------------------------------------------

def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def coerce_category(value: str) -> str:
    candidate = value.strip()
    if candidate == "Sunglasses":
        return NormalizedCategory.FRAMES.value
    if candidate in {category.value for category in NormalizedCategory}:
        return candidate
    return NormalizedCategory.ACCESSORIES.value


def coerce_usage(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    if candidate in _USAGES:
        return candidate
    if candidate in _BOTH_USAGE_ALIASES:
        return Usage.BOTH.value
    return None


def coerce_fit(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if candidate in _FITS else None


def coerce_angle(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if candidate in _ANGLES else PhotoAngle.UNKNOWN.value


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, (list, tuple)):
        return None
    items = [item for item in value if isinstance(item, str) and item.strip()]
    return items or None


def _photo_key(url: str) -> str:
    path = urlparse(url).path
    return (posixpath.basename(path) or url).lower()


class VendorAdapter:
    """
    Interface every vendor adapter implements.

    key: unique adapter id, e.g. "moscot.catalog"
    vendor: the vendor the adapter produces products for
    input_schema: object with safe_parse(payload) -> ParseResult
    """

    key: str = ""
    vendor: AdapterVendor
    input_schema: CatalogInputSchema

    def normalize(self, parsed: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class CatalogAdapter(VendorAdapter):
    """
    Adapter for catalogs in the common scraper export format.

    Vendor-specific adapters subclass it and override the hooks
    (``is_product_photo``, ``source_fields``) where their feeds differ.
    """

    def __init__(self, slug: str, name: Optional[str] = None, key: Optional[str] = None):
        self.vendor = AdapterVendor(slug=slug, name=name or slug)
        self.key = key or f"{slug}.catalog"
        self.input_schema = CatalogInputSchema()

    def __repr__(self):
        return f"<{type(self).__name__}(key='{self.key}', vendor='{self.vendor.slug}')>"

    # Hooks -------------------------------------------------------------

    def is_product_photo(self, url: str) -> bool:
        path = urlparse(url).path.lower()
        if path.endswith(".svg"):
            return False
        return not _NON_PRODUCT_IMAGE.search(posixpath.basename(path) or path)

    def source_fields(self, source: Dict[str, Any]) -> Dict[str, Any]:
        retrieved_at = source.get("retrievedAt", source.get("lastSyncISO"))
        return {
            "url": source.get("url"),
            "retrievedAt": retrieved_at,
            "priceList": clean_str(source.get("priceList")),
            "note": clean_str(source.get("note")) or clean_str(source.get("supplier")),
        }

    # Normalization -----------------------------------------------------

    def normalize(self, parsed: Dict[str, Any]) -> Dict[str, Any]:
        catalog_id = parsed["catalogId"].strip()
        if not catalog_id:
            raise ValueError("catalogId is blank")

        category = coerce_category(parsed["category"])
        source = parsed.get("source") if isinstance(parsed.get("source"), dict) else {}

        product = {
            "vendor": {"slug": self.vendor.slug, "name": self.vendor.name},
            "catalogId": catalog_id,
            "name": clean_str(parsed.get("name")),
            "model": clean_str(parsed.get("model")),
            "brand": clean_str(parsed.get("brand")),
            "category": category,
            "tags": _string_list(parsed.get("tags")),
            "collections": _string_list(parsed.get("collections")),
            "descriptionHtml": parsed.get("descriptionHtml") if isinstance(parsed.get("descriptionHtml"), str) else None,
            "storyHtml": parsed.get("storyHtml") if isinstance(parsed.get("storyHtml"), str) else None,
            "photos": self.normalize_photos(parsed.get("photos")),
            "source": self.normalize_source(source),
            "price": self.normalize_price(parsed.get("price")),
            "variants": self.normalize_variants(parsed.get("variants"), category, catalog_id),
            "extras": self.normalize_extras(source),
            "raw": copy.deepcopy(parsed),
        }
        return _compact(product)

    def normalize_variants(self, raw_variants: Any, category: str, catalog_id: str) -> List[Dict[str, Any]]:
        variants = raw_variants if isinstance(raw_variants, list) else []
        if not variants:
            return [self.fallback_variant(category, catalog_id)]

        if category == NormalizedCategory.FRAMES.value:
            return [self.frame_variant(variant, catalog_id, index) for index, variant in enumerate(variants)]
        if category == NormalizedCategory.ACCESSORIES.value:
            return [self.accessory_variant(variant, catalog_id, index) for index, variant in enumerate(variants)]

        # Lenses and contacts are sold by prescription; one identity per product
        return [self.fallback_variant(category, catalog_id)]

    @staticmethod
    def fallback_variant(category: str, catalog_id: str) -> Dict[str, Any]:
        variant_type = CATEGORY_VARIANT_TYPES[NormalizedCategory(category)].value
        return {"type": variant_type, "id": f"{catalog_id}:variant"}

    def _variant_common(self, variant: Dict[str, Any], catalog_id: str, index: int) -> Dict[str, Any]:
        variant_id = clean_str(variant.get("id")) or f"{catalog_id}:v{index}"
        attributes = variant.get("attributes")
        return {
            "id": variant_id,
            "sku": variant.get("sku") if isinstance(variant.get("sku"), str) else None,
            "barcode": variant.get("barcode") if isinstance(variant.get("barcode"), str) else None,
            "sizeLabel": clean_str(variant.get("sizeLabel")),
            "notes": variant.get("notes") if isinstance(variant.get("notes"), str) else None,
            "attributes": copy.deepcopy(attributes) if isinstance(attributes, dict) else None,
        }

    def frame_variant(self, variant: Any, catalog_id: str, index: int) -> Dict[str, Any]:
        variant = variant if isinstance(variant, dict) else {}
        data = {"type": "frame"}
        data.update(self._variant_common(variant, catalog_id, index))
        data.update(
            fit=coerce_fit(variant.get("fit")),
            usage=coerce_usage(variant.get("usage")),
            measurements=self.normalize_measurements(variant),
            color=self.normalize_color(variant.get("color")),
            polarized=variant.get("polarized") if isinstance(variant.get("polarized"), bool) else None,
            clipCompatible=variant.get("clipCompatible") if isinstance(variant.get("clipCompatible"), bool) else None,
        )
        return _compact(data)

    def accessory_variant(self, variant: Any, catalog_id: str, index: int) -> Dict[str, Any]:
        variant = variant if isinstance(variant, dict) else {}
        data = {"type": "accessory"}
        data.update(self._variant_common(variant, catalog_id, index))
        data.update(
            packSize=to_number(variant.get("packSize")),
            color=self.normalize_color(variant.get("color")),
        )
        return _compact(data)

    @staticmethod
    def normalize_color(value: Any) -> Optional[Dict[str, Any]]:
        if isinstance(value, str):
            value = {"name": value}
        if not isinstance(value, dict):
            return None
        name = clean_str(value.get("name"))
        if not name:
            return None
        return _compact({
            "name": name,
            "swatch": value.get("swatch") if isinstance(value.get("swatch"), str) else None,
            "finish": value.get("finish") if isinstance(value.get("finish"), str) else None,
        })

    @staticmethod
    def normalize_measurements(variant: Dict[str, Any]) -> Optional[Dict[str, float]]:
        measurements = variant.get("measurements") if isinstance(variant.get("measurements"), dict) else {}
        size = variant.get("size") if isinstance(variant.get("size"), dict) else {}

        def pick(primary: str, fallback: Optional[str] = None) -> Optional[float]:
            value = to_number(measurements.get(primary))
            if value is None and fallback:
                value = to_number(size.get(fallback))
            return value

        values = _compact({
            "lensWidth": pick("lensWidth", "lens"),
            "lensHeight": pick("lensHeight"),
            "frameWidth": pick("frameWidth"),
            "bridge": pick("bridge", "bridge"),
            "temple": pick("temple", "temple"),
        })
        return values or None

    def normalize_photos(self, raw_photos: Any) -> List[Dict[str, Any]]:
        if not isinstance(raw_photos, list):
            return []

        photos = []
        seen = set()
        for entry in raw_photos:
            if not isinstance(entry, dict):
                continue
            url = clean_str(entry.get("url"))
            if not url or not is_http_url(url) or not self.is_product_photo(url):
                continue
            key = _photo_key(url)
            if key in seen:
                continue
            seen.add(key)

            source = entry.get("source").strip().lower() if isinstance(entry.get("source"), str) else None
            photos.append(_compact({
                "url": url,
                "label": entry.get("label") if isinstance(entry.get("label"), str) else None,
                "source": source if source in ("catalog", "local") else None,
                "angle": coerce_angle(entry.get("angle")),
                "colorwayName": entry.get("colorwayName") if isinstance(entry.get("colorwayName"), str) else None,
            }))

        if not photos:
            return []

        hero = next((photo for photo in photos if photo.get("angle") == PhotoAngle.FRONT.value), photos[0])
        for photo in photos:
            photo["isHero"] = photo is hero

        unknown_rank = PHOTO_ANGLE_PRECEDENCE[PhotoAngle.UNKNOWN.value]
        ranked = sorted(
            enumerate(photos),
            key=lambda pair: (
                0 if pair[1]["isHero"] else 1,
                PHOTO_ANGLE_PRECEDENCE.get(pair[1].get("angle"), unknown_rank),
                pair[0],
            ),
        )
        return [photo for _, photo in ranked]

    def normalize_source(self, source: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not source:
            return None
        fields = self.source_fields(source)
        if not is_http_url(fields.get("url")):
            fields["url"] = None
        if not is_iso_datetime(fields.get("retrievedAt")):
            fields["retrievedAt"] = None
        fields = _compact(fields)
        return fields or None

    @staticmethod
    def normalize_price(price: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(price, dict):
            return None
        amount = to_number(price.get("amount"))
        currency = clean_str(price.get("currency"))
        if amount is None or not currency or len(currency) > 8:
            return None
        return {"amount": amount, "currency": currency}

    def normalize_extras(self, source: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        extras = {}
        confidence = source.get("confidence")
        if confidence:
            extras["sourceConfidence"] = confidence
        supplier = clean_str(source.get("supplier"))
        if supplier and supplier != self.vendor.name:
            extras["supplierLabel"] = supplier
        return extras or None
