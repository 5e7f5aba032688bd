# tests/integration/vendor_sync/test_applier.py
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from catalog_sync.core.exceptions import ApplyError, ConcurrencyConflictError
from catalog_sync.models import Product, StoreStock
from catalog_sync.services.vendor_sync.applier import CatalogApplier, is_conflict, is_retryable
from catalog_sync.services.vendor_sync.diff_engine import compute_diff
from catalog_sync.services.vendor_sync.normalizer import normalize_batch


class SerializationFailure(Exception):
    sqlstate = "40001"


async def diff_for(applier, registry, payloads, vendor="acme"):
    snapshot = await applier.read_snapshot(vendor)
    return compute_diff(vendor, normalize_batch(vendor, payloads, registry), snapshot)


async def all_rows(db, model):
    result = await db.execute(select(model).execution_options(populate_existing=True))
    return result.scalars().all()


async def test_dry_run_does_not_write(db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    diff = await diff_for(applier, registry, [frame_payload])

    summary = await applier.apply("acme", diff, dry_run=True, actor="tester")

    assert summary.dry_run is True
    assert summary.created == 1
    assert summary.hash == diff.hash
    assert await all_rows(db_session, Product) == []
    assert await all_rows(db_session, StoreStock) == []


async def test_apply_then_rediff_is_unchanged(db_session, registry, settings, frame_payload):
    """
    After applying a diff, diffing the same batch again reports every row as
    unchanged with the same hash.
    """
    applier = CatalogApplier(db_session, settings)
    first = await diff_for(applier, registry, [frame_payload])

    summary = await applier.apply("acme", first, dry_run=False, source_path="(inline)")

    assert summary.dry_run is False
    assert summary.source_path == "(inline)"
    products = await all_rows(db_session, Product)
    assert len(products) == 1
    product = products[0]
    assert (product.sku, product.vendor, product.color, product.category) == ("SKU-1", "acme", "Black", "Frames")
    assert product.delisted_at is None
    stocks = await all_rows(db_session, StoreStock)
    assert [(stock.store_id, stock.product_id, stock.qty) for stock in stocks] == [("main", product.id, 0)]

    second = await diff_for(applier, registry, [frame_payload])

    assert second.counts.created == 0
    assert second.counts.unchanged == 1
    assert second.hash == first.hash


async def test_apply_updates_fields_and_declared_stock(db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    await applier.apply("acme", await diff_for(applier, registry, [frame_payload]), dry_run=False)

    frame_payload["variants"][0]["color"] = {"name": "Tortoise"}
    frame_payload["variants"][0]["attributes"] = {"stock": 7}
    diff = await diff_for(applier, registry, [frame_payload])
    assert diff.items[0].status == "updated"

    await applier.apply("acme", diff, dry_run=False)

    product = (await all_rows(db_session, Product))[0]
    assert product.color == "Tortoise"
    stock = (await all_rows(db_session, StoreStock))[0]
    assert stock.qty == 7


async def test_removed_product_is_zeroed_and_delisted(db_session, registry, settings):
    product = Product(sku="SKU-1", vendor="acme", catalog_id="A-1", name="A-1 — Black", category="Frames")
    db_session.add(product)
    await db_session.flush()
    db_session.add_all([
        StoreStock(store_id="main", product_id=product.id, qty=5),
        StoreStock(store_id="annex", product_id=product.id, qty=2),
    ])
    await db_session.commit()

    applier = CatalogApplier(db_session, settings)
    diff = await diff_for(applier, registry, [])
    assert diff.counts.removed == 1
    assert diff.removed[0].sku == "SKU-1"

    await applier.apply("acme", diff, dry_run=False)

    assert [stock.qty for stock in await all_rows(db_session, StoreStock)] == [0, 0]
    stored = (await all_rows(db_session, Product))[0]
    assert stored.delisted_at is not None

    # A delisted product is not reported as removed again
    again = await diff_for(applier, registry, [])
    assert again.counts.removed == 0


async def test_removed_product_without_stock_gets_zero_row(db_session, registry, settings):
    product = Product(sku="SKU-9", vendor="acme", name="Orphan", category="Accessories")
    db_session.add(product)
    await db_session.commit()

    applier = CatalogApplier(db_session, settings)
    await applier.apply("acme", await diff_for(applier, registry, []), dry_run=False)

    stocks = await all_rows(db_session, StoreStock)
    assert [(stock.store_id, stock.qty) for stock in stocks] == [("main", 0)]


async def test_relisted_product_is_restored(db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    await applier.apply("acme", await diff_for(applier, registry, [frame_payload]), dry_run=False)
    await applier.apply("acme", await diff_for(applier, registry, []), dry_run=False)

    diff = await diff_for(applier, registry, [frame_payload])
    assert diff.items[0].status == "updated"
    await applier.apply("acme", diff, dry_run=False)

    product = (await all_rows(db_session, Product))[0]
    assert product.delisted_at is None


async def test_other_vendors_are_untouched(db_session, registry, settings, frame_payload):
    db_session.add(Product(sku="MOS-1", vendor="moscot", name="Lemtosh", category="Frames"))
    await db_session.commit()

    applier = CatalogApplier(db_session, settings)
    diff = await diff_for(applier, registry, [frame_payload])

    assert diff.counts.removed == 0


async def test_sku_of_another_vendor_is_not_taken_over(db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    await applier.apply("acme", await diff_for(applier, registry, [frame_payload]), dry_run=False)

    moscot_payload = {"catalogId": "M-1", "category": "Frames", "variants": [{"sku": "sku-1"}]}
    diff = await diff_for(applier, registry, [moscot_payload], vendor="moscot")

    with pytest.raises(ApplyError, match="already belongs to vendor acme"):
        await applier.apply("moscot", diff, dry_run=False)

    products = await all_rows(db_session, Product)
    assert [(product.sku, product.vendor) for product in products] == [("SKU-1", "acme")]
    assert len((await applier.read_snapshot("acme")).products) == 1


# --- Retries ---

def test_conflict_detection():
    conflict = OperationalError("UPDATE product", {}, SerializationFailure())
    locked = OperationalError("UPDATE product", {}, Exception("database is locked"))

    assert is_conflict(conflict) is True
    assert is_conflict(locked) is False
    assert is_retryable(locked) is True
    assert is_retryable(ValueError("nope")) is False


async def test_transient_failure_is_retried(mocker, db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    diff = await diff_for(applier, registry, [frame_payload])
    write = mocker.patch.object(
        applier,
        "_write",
        new=mocker.AsyncMock(side_effect=[OperationalError("INSERT", {}, Exception("database is locked")), None]),
    )

    summary = await applier.apply("acme", diff, dry_run=False)

    assert write.await_count == 2
    assert summary.created == 1


async def test_exhausted_conflicts_raise_concurrency_error(mocker, db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    diff = await diff_for(applier, registry, [frame_payload])
    write = mocker.patch.object(
        applier,
        "_write",
        new=mocker.AsyncMock(side_effect=OperationalError("UPDATE", {}, SerializationFailure())),
    )

    with pytest.raises(ConcurrencyConflictError):
        await applier.apply("acme", diff, dry_run=False)

    assert write.await_count == settings.APPLY_MAX_ATTEMPTS


async def test_unexpected_failure_is_not_retried(mocker, db_session, registry, settings, frame_payload):
    applier = CatalogApplier(db_session, settings)
    diff = await diff_for(applier, registry, [frame_payload])
    write = mocker.patch.object(applier, "_write", new=mocker.AsyncMock(side_effect=ValueError("bad row")))

    with pytest.raises(ApplyError) as excinfo:
        await applier.apply("acme", diff, dry_run=False)

    assert not isinstance(excinfo.value, ConcurrencyConflictError)
    assert write.await_count == 1
