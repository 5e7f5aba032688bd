"""
Run Recorder

Writes the VendorSyncRun row of every dispatch and keeps VendorSyncState in
step with it. A run is inserted Pending and finalized exactly once; the
finalization and the state upsert are committed together.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import RunStatus
from catalog_sync.core.exceptions import RunStateError
from catalog_sync.core.utils import ensure_utc, utcnow
from catalog_sync.models import VendorSyncRun, VendorSyncRunDiff, VendorSyncState
from catalog_sync.schemas.diff import DiffResult, RunSummary

logger = logging.getLogger(__name__)

# Items kept in the stored diff summary of a run
AGGREGATE_ITEM_LIMIT = 50


def diff_aggregates(diff: DiffResult, limit: int = AGGREGATE_ITEM_LIMIT) -> Dict[str, Any]:
    """Bounded, JSON-ready summary of a diff for the run history."""
    return {
        "hash": diff.hash,
        "counts": diff.counts.to_api(),
        "items": [
            {
                "catalogId": item.catalog_id,
                "sku": item.sku,
                "status": item.status,
                "changes": [change.field for change in item.product.changes],
                "stockChanges": sum(1 for stock in item.stocks if stock.changed),
            }
            for item in diff.items[:limit]
        ],
        "removed": [{"catalogId": entry.catalog_id, "sku": entry.sku} for entry in diff.removed[:limit]],
        "truncated": len(diff.items) > limit or len(diff.removed) > limit,
    }


class RunRecorder:
    """Owns vendor_sync_run, vendor_sync_run_diff and vendor_sync_state."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def begin_run(
        self,
        vendor: str,
        actor: Optional[str],
        dry_run: bool,
        source_path: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Insert a Pending run and commit it; returns the run id."""
        now = utcnow()
        run = VendorSyncRun(
            vendor=vendor,
            status=RunStatus.PENDING.value,
            actor=actor,
            dry_run=dry_run,
            source_path=source_path,
            started_at=now,
            updated_at=now,
            run_metadata=metadata,
        )
        self.db.add(run)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Started {vendor} sync run {run.id} ({'preview' if dry_run else 'apply'})")
        return run.id

    async def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        *,
        counts: Optional[Dict[str, int]] = None,
        hash: Optional[str] = None,
        duration_ms: Optional[int] = None,
        error_message: Optional[str] = None,
        aggregates: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> VendorSyncRun:
        """
        Move a Pending run to Success or Failed and update the vendor state
        in the same transaction.

        Raises:
            RunStateError: unknown run, run already terminal, or a target
                status other than Success / Failed
        """
        status = RunStatus(status)
        try:
            if status == RunStatus.PENDING:
                raise RunStateError(f"Run {run_id} cannot be moved back to Pending")

            result = await self.db.execute(
                select(VendorSyncRun)
                .where(VendorSyncRun.id == run_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            run = result.scalar_one_or_none()
            if run is None:
                raise RunStateError(f"Run {run_id} does not exist")
            if run.is_terminal:
                raise RunStateError(f"Run {run_id} is already {run.status}")

            now = utcnow()
            if duration_ms is None:
                duration_ms = max(0, int((now - ensure_utc(run.started_at)).total_seconds() * 1000))

            run.status = status.value
            run.finished_at = now
            run.updated_at = now
            run.duration_ms = duration_ms
            if metadata:
                run.run_metadata = {**(run.run_metadata or {}), **metadata}

            state = await self._lock_state(run.vendor)
            if status == RunStatus.SUCCESS:
                run.counts = counts or {}
                run.hash = hash
                run.error = None
                state.last_run_at = now
                state.last_run_by = run.actor
                state.last_duration_ms = duration_ms
                state.total_items = (counts or {}).get("total", 0)
                state.last_source = run.source_path
                state.last_hash = hash
                state.last_error = None
                if aggregates is not None:
                    self.db.add(VendorSyncRunDiff(run_id=run.id, aggregates=aggregates))
            else:
                run.error = error_message or "Unknown error"
                if counts:
                    run.counts = counts
                state.last_error = run.error
            state.updated_at = now

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Finalized {run.vendor} sync run {run.id} as {run.status} in {duration_ms}ms")
        return run

    async def finalize_success(self, run_id: str, summary: RunSummary, diff: DiffResult) -> VendorSyncRun:
        return await self.finalize_run(
            run_id,
            RunStatus.SUCCESS,
            counts=diff.counts.to_api(),
            hash=summary.hash,
            aggregates=diff_aggregates(diff),
        )

    async def finalize_failure(self, run_id: str, error_message: str) -> VendorSyncRun:
        return await self.finalize_run(run_id, RunStatus.FAILED, error_message=error_message)

    async def _lock_state(self, vendor: str) -> VendorSyncState:
        result = await self.db.execute(
            select(VendorSyncState)
            .where(VendorSyncState.vendor == vendor)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        state = result.scalar_one_or_none()
        if state is None:
            state = VendorSyncState(vendor=vendor)
            self.db.add(state)
        return state

    async def get_state(self, vendor: str) -> Optional[VendorSyncState]:
        result = await self.db.execute(
            select(VendorSyncState)
            .where(VendorSyncState.vendor == vendor)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
