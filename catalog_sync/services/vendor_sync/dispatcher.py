"""
Vendor sync dispatcher: one preview or apply of a vendor catalog.

    load source -> normalize -> begin run -> snapshot -> diff -> apply -> finalize

Loading and normalization happen before the run exists, so a bad payload
leaves no run behind. Anything failing after begin_run finalizes the run as
Failed before the error propagates.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.enums import SyncMode
from catalog_sync.core.exceptions import ApplyError, VendorSyncError
from catalog_sync.core.security import DEFAULT_ACTOR
from catalog_sync.schemas.diff import DiffResult, RunSummary
from catalog_sync.schemas.vendor_sync import SyncRequest
from catalog_sync.services.vendor_sync.applier import CatalogApplier
from catalog_sync.services.vendor_sync.catalog_loader import load_catalog
from catalog_sync.services.vendor_sync.diff_engine import compute_diff
from catalog_sync.services.vendor_sync.normalizer import normalize_batch
from catalog_sync.services.vendor_sync.registry import VendorRegistry, get_registry, normalize_slug
from catalog_sync.services.vendor_sync.run_recorder import RunRecorder

logger = logging.getLogger(__name__)

INLINE_SOURCE = "(inline)"


@dataclass
class DispatchResult:
    vendor: str
    dry_run: bool
    meta: Dict[str, Any]
    normalized_count: int
    diff: DiffResult
    run_id: str
    summary: RunSummary

    @property
    def mode(self) -> str:
        return SyncMode.PREVIEW.value if self.dry_run else SyncMode.APPLY.value

    def to_api(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor,
            "mode": self.mode,
            "dryRun": self.dry_run,
            "meta": self.meta,
            "normalizedCount": self.normalized_count,
            "diff": self.diff.to_api(),
            "run": {"runId": self.run_id, "summary": self.summary.to_api()},
        }


class VendorSyncDispatcher:
    """Runs previews and applies for registered vendors."""

    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[VendorRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.registry = registry or get_registry()
        self.settings = settings or get_settings()
        self.recorder = RunRecorder(db)
        self.applier = CatalogApplier(db, self.settings)

    async def _resolve_items(self, request: SyncRequest):
        if request.items:
            return list(request.items), INLINE_SOURCE
        if request.source_path:
            catalog = await load_catalog(request.source_path, limit=request.limit, settings=self.settings)
            return catalog.items, catalog.source_path
        return [], INLINE_SOURCE

    async def dispatch(
        self,
        slug: str,
        request: SyncRequest,
        dry_run: bool = True,
        actor: Optional[str] = None,
    ) -> DispatchResult:
        """
        Preview (dry_run) or apply a vendor catalog.

        Raises:
            AdapterNotFoundError, InputValidationError, CatalogSourceError:
                before any run is recorded
            ExecutionError, OutputValidationError: adapter failures, no run recorded
            ApplyError, ConcurrencyConflictError: the run is finalized Failed
        """
        vendor = normalize_slug(slug)
        actor = actor or DEFAULT_ACTOR

        items, source_path = await self._resolve_items(request)
        normalized = normalize_batch(vendor, items, self.registry)

        meta = request.source_meta()
        mode = SyncMode.PREVIEW.value if dry_run else SyncMode.APPLY.value
        run_id = await self.recorder.begin_run(
            vendor,
            actor,
            dry_run,
            source_path,
            metadata={"mode": mode, "source": meta, "normalizedCount": len(normalized)},
        )

        try:
            snapshot = await self.applier.read_snapshot(vendor)
            diff = compute_diff(vendor, normalized, snapshot, self.settings.DEFAULT_STORE_ID)
            summary = await self.applier.apply(
                vendor,
                diff,
                dry_run=dry_run,
                actor=actor,
                source_path=source_path,
            )
            await self.recorder.finalize_success(run_id, summary, diff)
        except VendorSyncError as exc:
            await self._fail(run_id, vendor, exc)
            raise
        except Exception as exc:
            await self._fail(run_id, vendor, exc)
            raise ApplyError(f"{mode} of {vendor} failed: {exc}") from exc

        logger.info(
            f"{mode} of {vendor} by {actor}: {diff.counts.total} items, "
            f"{diff.counts.created} new, {diff.counts.updated} updated, {diff.counts.removed} removed"
        )
        return DispatchResult(
            vendor=vendor,
            dry_run=dry_run,
            meta=meta,
            normalized_count=len(normalized),
            diff=diff,
            run_id=run_id,
            summary=summary,
        )

    async def _fail(self, run_id: str, vendor: str, exc: Exception) -> None:
        logger.error(f"Sync run {run_id} of {vendor} failed: {exc}", exc_info=True)
        try:
            await self.db.rollback()
            await self.recorder.finalize_failure(run_id, str(exc) or type(exc).__name__)
        except Exception as finalize_error:
            logger.error(f"Could not finalize run {run_id} as Failed: {finalize_error}", exc_info=True)

