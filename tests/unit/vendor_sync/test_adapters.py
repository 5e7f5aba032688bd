# tests/unit/vendor_sync/test_adapters.py
import pytest

from catalog_sync.services.vendor_sync.adapters.base import (
    CatalogAdapter,
    CatalogInputSchema,
    coerce_angle,
    coerce_category,
    coerce_usage,
    to_number,
)
from catalog_sync.services.vendor_sync.adapters.moscot import MoscotAdapter


# --- Input schema ---

def test_safe_parse_accepts_extra_fields_and_copies_payload(moscot_payload):
    result = CatalogInputSchema().safe_parse(moscot_payload)

    assert result.success is True
    assert result.data == moscot_payload
    assert result.data is not moscot_payload


def test_safe_parse_reports_missing_catalog_id():
    result = CatalogInputSchema().safe_parse({"category": "Frames"})

    assert result.success is False
    assert result.field_errors == {"catalogId": ["Required"]}
    assert result.error is not None


def test_safe_parse_rejects_non_string_fields():
    result = CatalogInputSchema().safe_parse({"catalogId": 12, "category": ""})

    assert result.success is False
    assert set(result.field_errors) == {"catalogId", "category"}


def test_safe_parse_rejects_non_objects():
    result = CatalogInputSchema().safe_parse(["not", "an", "object"])
    assert result.success is False


# --- Coercion helpers ---

@pytest.mark.parametrize("raw, expected", [
    ("Frames", "Frames"),
    (" Lenses ", "Lenses"),
    ("Sunglasses", "Frames"),
    ("Cases", "Accessories"),
])
def test_coerce_category(raw, expected):
    assert coerce_category(raw) == expected


def test_coerce_usage_maps_aliases():
    assert coerce_usage("SUN") == "sun"
    assert coerce_usage("optical-sun") == "both"
    assert coerce_usage("sun-optical") == "both"
    assert coerce_usage("reading") is None
    assert coerce_usage(None) is None


def test_coerce_angle_defaults_to_unknown():
    assert coerce_angle("Quarter") == "quarter"
    assert coerce_angle("hinge") == "unknown"
    assert coerce_angle(None) is None


def test_to_number():
    assert to_number(3) == 3
    assert to_number(" 2.5 ") == 2.5
    assert to_number("abc") is None
    assert to_number(True) is None
    assert to_number(float("nan")) is None


# --- MOSCOT normalization ---

def test_moscot_normalize_product_level_fields(moscot_payload):
    product = MoscotAdapter().normalize(moscot_payload)

    assert product["vendor"] == {"slug": "moscot", "name": "MOSCOT"}
    assert product["catalogId"] == "lemtosh"
    assert product["category"] == "Frames"
    assert product["tags"] == ["classic"]
    assert product["price"] == {"amount": 320.0, "currency": "USD"}
    assert product["source"] == {
        "url": "https://moscot.com/products/lemtosh",
        "retrievedAt": "2024-03-01T10:00:00Z",
        "note": "MOSCOT NYC",
    }
    assert product["extras"] == {"sourceConfidence": "high", "supplierLabel": "MOSCOT NYC"}
    # Vendor specific keys survive only in raw
    assert product["raw"]["vendorNotes"] == {"restock": "spring"}
    assert "vendorNotes" not in product


def test_moscot_photos_are_filtered_deduplicated_and_ordered(moscot_payload):
    photos = MoscotAdapter().normalize(moscot_payload)["photos"]

    assert [photo["url"] for photo in photos] == [
        "https://cdn.moscot.com/files/lemtosh_front.jpg",
        "https://cdn.moscot.com/files/lemtosh_side.jpg",
        "https://cdn.moscot.com/files/lemtosh_temple.jpg",
    ]
    assert [photo["isHero"] for photo in photos] == [True, False, False]
    assert photos[0]["source"] == "catalog"
    assert photos[2]["angle"] == "unknown"


def test_first_photo_is_hero_without_front_angle():
    adapter = CatalogAdapter(slug="acme", name="Acme Optical")
    photos = adapter.normalize_photos([
        {"url": "https://img.acme.test/a-side.jpg", "angle": "side"},
        {"url": "https://img.acme.test/a-quarter.jpg", "angle": "quarter"},
    ])

    assert photos[0]["url"] == "https://img.acme.test/a-side.jpg"
    assert photos[0]["isHero"] is True
    assert photos[1]["isHero"] is False


def test_generic_adapter_keeps_shopify_thumbnails():
    adapter = CatalogAdapter(slug="acme")
    assert adapter.is_product_photo("https://img.acme.test/frame_small.jpg") is True
    assert adapter.is_product_photo("https://img.acme.test/brand-logo.png") is False
    assert adapter.is_product_photo("https://img.acme.test/frame.svg") is False
    assert MoscotAdapter().is_product_photo("https://img.acme.test/frame_small.jpg") is False


def test_moscot_frame_variants(moscot_payload):
    first, second = MoscotAdapter().normalize(moscot_payload)["variants"]

    assert first == {
        "type": "frame",
        "id": "lemtosh-black-46",
        "sku": "MOS-LEM-BLK-46",
        "barcode": "0123456789",
        "attributes": {"qty": 4},
        "fit": "wide",
        "usage": "both",
        "measurements": {"lensWidth": 46, "bridge": 24, "temple": 145},
        "color": {"name": "Black"},
    }
    assert second["id"] == "lemtosh:v1"
    assert "fit" not in second
    assert second["usage"] == "sun"
    assert second["measurements"] == {"lensWidth": 49, "bridge": 24.0, "temple": 145}
    assert second["color"] == {"name": "Tortoise", "finish": "gloss"}


def test_missing_variants_get_a_fallback_identity():
    product = CatalogAdapter(slug="acme").normalize({"catalogId": "C-9", "category": "Contacts"})
    assert product["variants"] == [{"type": "contact", "id": "C-9:variant"}]


def test_lens_products_collapse_to_one_variant():
    product = CatalogAdapter(slug="acme").normalize({
        "catalogId": "L-1",
        "category": "Lenses",
        "variants": [{"sku": "L-1-A"}, {"sku": "L-1-B"}],
    })
    assert product["variants"] == [{"type": "lens", "id": "L-1:variant"}]


def test_invalid_source_and_price_are_dropped():
    product = CatalogAdapter(slug="acme").normalize({
        "catalogId": "A-2",
        "category": "Accessories",
        "source": {"url": "not a url", "retrievedAt": "yesterday", "priceList": " 2024 "},
        "price": {"amount": 10, "currency": "DOLLARS-US"},
    })

    assert product["source"] == {"priceList": "2024"}
    assert "price" not in product


def test_blank_catalog_id_fails_normalization():
    with pytest.raises(ValueError):
        CatalogAdapter(slug="acme").normalize({"catalogId": "   ", "category": "Frames"})
