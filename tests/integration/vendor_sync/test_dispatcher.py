# tests/integration/vendor_sync/test_dispatcher.py
import json

import pytest
from sqlalchemy import func, select

from catalog_sync.core.enums import RunStatus
from catalog_sync.core.exceptions import (
    AdapterNotFoundError,
    ApplyError,
    CatalogSourceError,
    ConcurrencyConflictError,
    InputValidationError,
)
from catalog_sync.models import Product, VendorSyncRun
from catalog_sync.schemas.vendor_sync import SyncRequest
from catalog_sync.services.vendor_sync.dispatcher import INLINE_SOURCE, VendorSyncDispatcher
from catalog_sync.services.vendor_sync.run_recorder import RunRecorder


@pytest.fixture
def dispatcher(db_session, registry, settings):
    return VendorSyncDispatcher(db_session, registry=registry, settings=settings)


async def run_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(VendorSyncRun))
    return result.scalar()


async def only_run(db) -> VendorSyncRun:
    result = await db.execute(select(VendorSyncRun).execution_options(populate_existing=True))
    return result.scalar_one()


async def test_preview_records_successful_dry_run(dispatcher, db_session, frame_payload):
    result = await dispatcher.dispatch("ACME", SyncRequest(items=[frame_payload]), dry_run=True, actor="tester")

    assert result.vendor == "acme"
    assert result.mode == "preview"
    assert result.normalized_count == 1
    assert result.meta == {"type": "inline", "count": 1}
    assert result.diff.counts.created == 1
    assert result.diff.items[0].status == "new"
    assert result.summary.dry_run is True

    run = await only_run(db_session)
    assert run.id == result.run_id
    assert run.status == RunStatus.SUCCESS.value
    assert run.dry_run is True
    assert run.source_path == INLINE_SOURCE
    assert run.run_metadata["mode"] == "preview"

    products = await db_session.execute(select(Product))
    assert products.scalars().all() == []

    state = await RunRecorder(db_session).get_state("acme")
    assert state.last_hash == result.diff.hash


async def test_apply_then_reapply(dispatcher, db_session, frame_payload):
    first = await dispatcher.dispatch("acme", SyncRequest(items=[frame_payload]), dry_run=False)
    second = await dispatcher.dispatch("acme", SyncRequest(items=[frame_payload]), dry_run=False)

    assert first.diff.counts.created == 1
    assert second.diff.counts.created == 0
    assert second.diff.counts.unchanged == 1
    assert second.diff.hash == first.diff.hash
    assert await run_count(db_session) == 2


async def test_to_api_shape(dispatcher, frame_payload):
    result = await dispatcher.dispatch("acme", SyncRequest(items=[frame_payload]))

    payload = result.to_api()

    assert set(payload) == {"vendor", "mode", "dryRun", "meta", "normalizedCount", "diff", "run"}
    assert payload["run"]["runId"] == result.run_id
    assert payload["run"]["summary"]["dryRun"] is True
    item = payload["diff"]["items"][0]
    assert item["product"]["after"]["sku"] == "SKU-1"
    assert "raw" not in item["normalized"]


async def test_invalid_payload_records_no_run(dispatcher, db_session):
    with pytest.raises(InputValidationError) as excinfo:
        await dispatcher.dispatch("acme", SyncRequest(items=[{"category": "Frames"}]))

    assert excinfo.value.field_errors == {"0.catalogId": ["Required"]}
    assert await run_count(db_session) == 0


async def test_unknown_vendor_records_no_run(dispatcher, db_session, frame_payload):
    with pytest.raises(AdapterNotFoundError):
        await dispatcher.dispatch("nobody", SyncRequest(items=[frame_payload]))

    assert await run_count(db_session) == 0


async def test_unreadable_source_records_no_run(dispatcher, db_session, tmp_path):
    with pytest.raises(CatalogSourceError):
        await dispatcher.dispatch("acme", SyncRequest(source_path=str(tmp_path / "missing.json")))

    assert await run_count(db_session) == 0


async def test_dispatch_from_source_path(dispatcher, db_session, tmp_path, frame_payload):
    path = tmp_path / "acme.catalog.json"
    path.write_text(json.dumps({"items": [frame_payload]}), encoding="utf-8")

    result = await dispatcher.dispatch("acme", SyncRequest(source_path=str(path)))

    assert result.meta == {"type": "sourcePath", "value": str(path)}
    assert result.summary.source_path == str(path)
    run = await only_run(db_session)
    assert run.source_path == str(path)


async def test_failed_apply_finalizes_run_as_failed(mocker, dispatcher, db_session, frame_payload):
    mocker.patch.object(dispatcher.applier, "apply", side_effect=RuntimeError("disk full"))

    with pytest.raises(ApplyError):
        await dispatcher.dispatch("acme", SyncRequest(items=[frame_payload]), dry_run=False)

    run = await only_run(db_session)
    assert run.status == RunStatus.FAILED.value
    assert "disk full" in run.error
    state = await RunRecorder(db_session).get_state("acme")
    assert "disk full" in state.last_error


async def test_concurrency_conflict_propagates(mocker, dispatcher, db_session, frame_payload):
    mocker.patch.object(dispatcher.applier, "apply", side_effect=ConcurrencyConflictError("busy"))

    with pytest.raises(ConcurrencyConflictError):
        await dispatcher.dispatch("acme", SyncRequest(items=[frame_payload]), dry_run=False)

    run = await only_run(db_session)
    assert run.status == RunStatus.FAILED.value
    assert run.error == "busy"
