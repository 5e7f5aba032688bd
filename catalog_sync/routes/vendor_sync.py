# catalog_sync/routes/vendor_sync.py
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import SyncScope
from catalog_sync.core.exceptions import (
    ApiError,
    InvalidRequestError,
    MissingVendorError,
    NotFoundError,
    ReadFailedError,
)
from catalog_sync.core.security import ServicePrincipal, require_scope
from catalog_sync.dependencies import get_db, get_vendor_registry
from catalog_sync.schemas.vendor_sync import ObservabilityQuery, SyncRequest, VendorCreate, VendorStateRead
from catalog_sync.services.vendor_sync.adapters.base import validation_field_errors
from catalog_sync.services.vendor_sync.dispatcher import VendorSyncDispatcher
from catalog_sync.services.vendor_sync.observability import RunObservabilityService
from catalog_sync.services.vendor_sync.registry import VendorRegistry, normalize_slug
from catalog_sync.services.vendor_sync.run_recorder import RunRecorder
from catalog_sync.services.vendor_sync.vendor_service import VendorService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/vendor-sync", tags=["vendor-sync"])

read_scope = require_scope(SyncScope.READ)
write_scope = require_scope(SyncScope.WRITE)
admin_scope = require_scope(SyncScope.ADMIN)

VENDOR_QUERY_KEYS = ("vendor", "v")
VENDOR_HEADER_KEYS = ("x-vendor", "vendor", "x-vendor-slug")


def ok(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": True, **payload}


def resolve_vendor(request: Request, settings: Settings) -> str:
    """
    Vendor slug from the query (vendor / v) or headers (x-vendor, vendor,
    x-vendor-slug). A key present with an empty value is an error; no key at
    all falls back to the default vendor.
    """
    for key, value in request.query_params.multi_items():
        if key.lower() in VENDOR_QUERY_KEYS:
            slug = normalize_slug(value)
            if not slug:
                raise MissingVendorError("vendor query parameter is empty")
            return slug

    for header in VENDOR_HEADER_KEYS:
        if header in request.headers:
            slug = normalize_slug(request.headers[header])
            if not slug:
                raise MissingVendorError(f"{header} header is empty")
            return slug

    return normalize_slug(settings.DEFAULT_VENDOR_SLUG)


async def read_json_body(request: Request, default: Any = None) -> Any:
    raw = await request.body()
    if not raw.strip():
        return default
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidRequestError("Request body must be valid JSON")


def parse_model(model, payload: Any):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError("Request validation failed", field_errors=validation_field_errors(e))


# Dispatch ------------------------------------------------------------------

async def _dispatch(slug: str, request: Request, db: AsyncSession, registry: VendorRegistry,
                    principal: ServicePrincipal, dry_run: bool) -> Dict[str, Any]:
    body = await read_json_body(request, default={})
    if isinstance(body, list):
        body = {"items": body}
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object or array")

    sync_request = parse_model(SyncRequest, body)
    dispatcher = VendorSyncDispatcher(db, registry=registry)
    result = await dispatcher.dispatch(slug, sync_request, dry_run=dry_run, actor=principal.actor)
    return ok(result.to_api())


# Observability -------------------------------------------------------------

@router.get("/runs")
async def list_runs(
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    settings: Settings = Depends(get_settings),
    principal: ServicePrincipal = Depends(read_scope),
):
    """Paginated run history of one vendor, newest first."""
    vendor = resolve_vendor(request, settings)
    params = request.query_params
    try:
        page = await RunObservabilityService(db, registry).list_runs(
            vendor,
            limit=params.get("limit"),
            cursor=params.get("cursor") or None,
            statuses=params.getlist("status"),
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Failed to load runs for {vendor}: {e}", exc_info=True)
        raise ReadFailedError("runs")
    return ok(page.to_api())


@router.get("/runs/{run_id}")
async def get_run(
    run_id: str,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(read_scope),
):
    try:
        run = await RunObservabilityService(db, registry).get_run(run_id)
    except Exception as e:
        logger.error(f"Failed to load run {run_id}: {e}", exc_info=True)
        raise ReadFailedError("run")
    if run is None:
        raise NotFoundError(f"Run {run_id} not found")
    return ok({"data": run.to_api()})


@router.get("/observability")
async def observability(
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(read_scope),
):
    """Runs of a vendor within [start, end] with status counts."""
    params = request.query_params
    query = parse_model(ObservabilityQuery, {
        "vendorId": params.get("vendorId"),
        "start": params.get("start"),
        "end": params.get("end"),
    })
    try:
        window = await RunObservabilityService(db, registry).aggregate(
            query,
            limit=params.get("limit"),
            cursor=params.get("cursor") or None,
        )
    except Exception as e:
        logger.error(f"Failed to load observability for {query.vendor_id}: {e}", exc_info=True)
        raise ReadFailedError("observability")
    return ok(window.to_api())


@router.get("/overview")
async def overview(
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(read_scope),
):
    try:
        summary = await RunObservabilityService(db, registry).overview()
    except Exception as e:
        logger.error(f"Failed to load sync overview: {e}", exc_info=True)
        raise ReadFailedError("overview")
    return ok(summary.to_api())


@router.get("/history")
async def history(
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(read_scope),
):
    try:
        vendors = await RunObservabilityService(db, registry).history(request.query_params.get("limit"))
    except Exception as e:
        logger.error(f"Failed to load sync history: {e}", exc_info=True)
        raise ReadFailedError("history")
    return ok({"vendors": [entry.to_api() for entry in vendors]})


@router.get("/state")
async def vendor_state(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: ServicePrincipal = Depends(read_scope),
):
    vendor = resolve_vendor(request, settings)
    try:
        state = await RunRecorder(db).get_state(vendor)
    except Exception as e:
        logger.error(f"Failed to load sync state for {vendor}: {e}", exc_info=True)
        raise ReadFailedError("state")
    snapshot = VendorStateRead.from_state(state)
    return ok({"snapshot": snapshot.to_api() if snapshot else None})


# Registry and onboarding ---------------------------------------------------

@router.get("/vendors")
async def list_vendors(
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(read_scope),
):
    try:
        vendors = await VendorService(db, registry).list_vendors()
    except Exception as e:
        logger.error(f"Failed to load vendors: {e}", exc_info=True)
        raise ReadFailedError("vendors")
    return ok({"vendors": [vendor.to_api() for vendor in vendors]})


@router.post("/vendors", status_code=201)
async def create_vendor(
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(admin_scope),
):
    """Onboard a vendor and its integration."""
    data = parse_model(VendorCreate, await read_json_body(request, default={}))
    vendor = await VendorService(db, registry).create_vendor(data)
    logger.info(f"Vendor {vendor.slug} onboarded by {principal.actor}")
    return JSONResponse(status_code=201, content=ok({"vendor": vendor.to_api()}))


@router.post("/registry/test-all")
async def test_all_integrations(
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(write_scope),
):
    summary = await VendorService(db, registry).test_all()
    return ok(summary.to_api())


@router.get("/registry/{slug}")
async def registry_entry(
    slug: str,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(read_scope),
):
    vendor = await VendorService(db, registry).get_vendor(slug)
    if vendor is None:
        raise NotFoundError(f"Vendor {slug} not found")
    return ok({"vendor": vendor.to_api()})


@router.post("/registry/{slug}/test")
async def test_integration(
    slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(write_scope),
):
    body = await read_json_body(request, default={})
    source_override = body.get("sourcePath") if isinstance(body, dict) else None
    result = await VendorService(db, registry).test_integration(slug, source_override=source_override)
    return ok({"result": result.to_api()})


# Dispatch routes are declared last so the static paths above win

@router.post("/{slug}/preview")
async def preview(
    slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(write_scope),
):
    """Diff a catalog batch against stored inventory without writing."""
    return await _dispatch(slug, request, db, registry, principal, dry_run=True)


@router.post("/{slug}/apply")
async def apply(
    slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    registry: VendorRegistry = Depends(get_vendor_registry),
    principal: ServicePrincipal = Depends(write_scope),
):
    """Diff a catalog batch and persist it."""
    return await _dispatch(slug, request, db, registry, principal, dry_run=False)
