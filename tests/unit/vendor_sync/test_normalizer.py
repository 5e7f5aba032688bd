# tests/unit/vendor_sync/test_normalizer.py
import pytest

from catalog_sync.core.exceptions import (
    AdapterNotFoundError,
    ExecutionError,
    InputValidationError,
    OutputValidationError,
)
from catalog_sync.schemas.normalized import NormalizedProduct
from catalog_sync.services.vendor_sync.adapters.base import CatalogAdapter
from catalog_sync.services.vendor_sync.normalizer import normalize_batch, normalize_vendor_item
from catalog_sync.services.vendor_sync.registry import VendorRegistry


class ExplodingAdapter(CatalogAdapter):
    def normalize(self, parsed):
        raise RuntimeError("scraper format changed")


class SloppyAdapter(CatalogAdapter):
    def normalize(self, parsed):
        # No variants and an unexpected top-level key
        return {
            "vendor": {"slug": self.vendor.slug},
            "catalogId": parsed["catalogId"],
            "category": "Frames",
            "variants": [],
            "supplierRating": 5,
        }


@pytest.fixture
def broken_registry():
    registry = VendorRegistry()
    registry.register_adapter(ExplodingAdapter(slug="exploding"))
    registry.register_adapter(SloppyAdapter(slug="sloppy"))
    return registry


def test_normalize_vendor_item_returns_validated_product(registry, moscot_payload):
    product = normalize_vendor_item("MOSCOT", moscot_payload, registry)

    assert isinstance(product, NormalizedProduct)
    assert product.vendor.slug == "moscot"
    assert product.category == "Frames"
    assert len(product.variants) == 2
    assert product.variants[0].measurements.lens_width == 46
    assert product.raw["vendorNotes"] == {"restock": "spring"}


def test_unknown_vendor_raises_adapter_not_found(registry, frame_payload):
    with pytest.raises(AdapterNotFoundError) as excinfo:
        normalize_vendor_item("unknown", frame_payload, registry)
    assert excinfo.value.slug == "unknown"


def test_input_validation_error_carries_field_errors(registry):
    with pytest.raises(InputValidationError) as excinfo:
        normalize_vendor_item("acme", {"category": "Frames"}, registry)

    assert excinfo.value.field_errors == {"catalogId": ["Required"]}
    assert excinfo.value.slug == "acme"


def test_adapter_failure_raises_execution_error(broken_registry, frame_payload):
    with pytest.raises(ExecutionError) as excinfo:
        normalize_vendor_item("exploding", frame_payload, broken_registry)

    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_invalid_adapter_output_raises_output_validation_error(broken_registry, frame_payload):
    with pytest.raises(OutputValidationError):
        normalize_vendor_item("sloppy", frame_payload, broken_registry)


def test_whitespace_catalog_id_is_an_execution_error(registry):
    with pytest.raises(ExecutionError):
        normalize_vendor_item("acme", {"catalogId": "   ", "category": "Frames"}, registry)


def test_normalize_batch_keeps_input_order(registry, frame_payload):
    second = dict(frame_payload, catalogId="A-2", variants=[{"sku": "SKU-2"}])

    products = normalize_batch("acme", [frame_payload, second], registry)

    assert [product.catalog_id for product in products] == ["A-1", "A-2"]


def test_normalize_batch_indexes_field_errors(registry, frame_payload):
    """
    Invalid items are reported together, keyed by their position in the batch.
    """
    items = [{"category": "Frames"}, frame_payload, {"catalogId": "A-3"}]

    with pytest.raises(InputValidationError) as excinfo:
        normalize_batch("acme", items, registry)

    assert excinfo.value.field_errors == {
        "0.catalogId": ["Required"],
        "2.category": ["Required"],
    }


def test_normalize_batch_single_missing_catalog_id(registry):
    with pytest.raises(InputValidationError) as excinfo:
        normalize_batch("acme", [{"category": "Frames"}], registry)

    assert excinfo.value.field_errors == {"0.catalogId": ["Required"]}


def test_normalize_batch_checks_vendor_before_items(registry):
    with pytest.raises(AdapterNotFoundError):
        normalize_batch("nobody", [], registry)


def test_empty_batch_normalizes_to_nothing(registry):
    assert normalize_batch("acme", [], registry) == []


@pytest.mark.parametrize("slug, payload_fixture", [("moscot", "moscot_payload"), ("acme", "frame_payload")])
def test_normalizing_raw_again_is_stable(request, registry, slug, payload_fixture):
    payload = request.getfixturevalue(payload_fixture)

    first = normalize_vendor_item(slug, payload, registry)
    second = normalize_vendor_item(slug, first.raw, registry)

    assert second.without_raw() == first.without_raw()
    assert second.raw == first.raw
