"""
Canonical product shape produced by every vendor adapter.

Adapters emit plain dicts keyed in camelCase; the facade validates them
against NormalizedProduct. Typed models forbid unknown keys: anything
vendor-specific survives only inside ``raw``.
"""
import math
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from catalog_sync.core.enums import CATEGORY_VARIANT_TYPES, NormalizedCategory
from catalog_sync.schemas.base import CamelSchema

UsageLiteral = Literal["optical", "sun", "both"]
FitLiteral = Literal["narrow", "average", "wide", "extra-wide"]
AngleLiteral = Literal["front", "quarter", "side", "temple", "model", "detail", "pack", "clip", "unknown"]
CategoryLiteral = Literal["Frames", "Lenses", "Contacts", "Accessories"]


def is_http_url(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_iso_datetime(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        datetime.fromisoformat(candidate)
    except ValueError:
        return False
    return True


class NormalizedSchema(CamelSchema):
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )


class VendorRef(NormalizedSchema):
    slug: str = Field(min_length=1)
    name: Optional[str] = None
    profile_id: Optional[str] = None


class Price(NormalizedSchema):
    amount: float
    currency: str = Field(min_length=1, max_length=8)

    @field_validator("amount")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("amount must be finite")
        return value


class ProductSource(NormalizedSchema):
    url: Optional[str] = None
    retrieved_at: Optional[str] = None
    price_list: Optional[str] = None
    note: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_http_url(value):
            raise ValueError("source url must be an http(s) URL")
        return value

    @field_validator("retrieved_at")
    @classmethod
    def _retrieved_at(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_iso_datetime(value):
            raise ValueError("retrievedAt must be an ISO-8601 datetime")
        return value


class Photo(NormalizedSchema):
    url: str
    label: Optional[str] = None
    is_hero: Optional[bool] = None
    source: Optional[Literal["catalog", "local"]] = None
    angle: Optional[AngleLiteral] = None
    colorway_name: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _url(cls, value: str) -> str:
        if not is_http_url(value):
            raise ValueError("photo url must be an http(s) URL")
        return value


class Color(NormalizedSchema):
    name: str = Field(min_length=1)
    swatch: Optional[str] = None
    finish: Optional[str] = None


class FrameMeasurements(NormalizedSchema):
    lens_width: Optional[float] = None
    lens_height: Optional[float] = None
    frame_width: Optional[float] = None
    bridge: Optional[float] = None
    temple: Optional[float] = None

    @model_validator(mode="after")
    def _at_least_one(self):
        values = (self.lens_width, self.lens_height, self.frame_width, self.bridge, self.temple)
        if all(value is None for value in values):
            raise ValueError("At least one frame measurement is required when measurements are provided")
        return self


class VariantBase(NormalizedSchema):
    id: str = Field(min_length=1)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    notes: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None


class FrameVariant(VariantBase):
    type: Literal["frame"]
    size_label: Optional[str] = None
    measurements: Optional[FrameMeasurements] = None
    fit: Optional[FitLiteral] = None
    usage: Optional[UsageLiteral] = None
    color: Optional[Color] = None
    polarized: Optional[bool] = None
    clip_compatible: Optional[bool] = None


class LensVariant(VariantBase):
    type: Literal["lens"]
    index: Optional[str] = None
    coating: Optional[str] = None
    diameter: Optional[float] = None
    base_curve: Optional[float] = None


class ContactVariant(VariantBase):
    type: Literal["contact"]
    power: Optional[float] = None
    cylinder: Optional[float] = None
    axis: Optional[float] = None
    base_curve: Optional[float] = None
    diameter: Optional[float] = None
    pack_size: Optional[float] = None


class AccessoryVariant(VariantBase):
    type: Literal["accessory"]
    color: Optional[Color] = None
    size_label: Optional[str] = None
    pack_size: Optional[float] = None


Variant = Annotated[
    Union[FrameVariant, LensVariant, ContactVariant, AccessoryVariant],
    Field(discriminator="type"),
]


class NormalizedProduct(NormalizedSchema):
    vendor: VendorRef
    catalog_id: str = Field(min_length=1)
    name: Optional[str] = None
    model: Optional[str] = None
    brand: Optional[str] = None
    category: CategoryLiteral
    tags: Optional[List[str]] = None
    collections: Optional[List[str]] = None
    description_html: Optional[str] = None
    story_html: Optional[str] = None
    photos: List[Photo] = Field(default_factory=list)
    source: Optional[ProductSource] = None
    price: Optional[Price] = None
    variants: List[Variant] = Field(min_length=1)
    extras: Optional[Dict[str, Any]] = None
    raw: Any = None

    @model_validator(mode="after")
    def _variant_types_match_category(self):
        expected = CATEGORY_VARIANT_TYPES[NormalizedCategory(self.category)].value
        for variant in self.variants:
            if variant.type != expected:
                raise ValueError(
                    f"Variant type {variant.type} does not match product category {self.category}"
                )
        return self

    def without_raw(self) -> Dict[str, Any]:
        """API representation with the original payload stripped."""
        return self.to_api(exclude={"raw"}, exclude_none=True)
