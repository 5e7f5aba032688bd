"""
Observability queries over the vendor sync run history.

All reads are ordered newest first (started_at DESC, id DESC). Cursors are
run ids: ``nextCursor`` names the first row beyond a page and the following
page starts at that row, so consecutive pages never overlap or skip a run.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import RunStatus, SyncMode
from catalog_sync.core.utils import clamp_limit, to_iso, utcnow
from catalog_sync.models import Vendor, VendorSyncRun
from catalog_sync.schemas.vendor_sync import (
    InProgressRun,
    Last24h,
    ObservabilityQuery,
    ObservabilityWindow,
    Overview,
    RunPage,
    RunRange,
    RunRead,
    StatusCounts,
    VendorHistory,
)
from catalog_sync.services.vendor_sync.registry import VendorRegistry, get_registry

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_HISTORY_LIMIT = 5
MAX_HISTORY_LIMIT = 10
IN_PROGRESS_LIMIT = 50

_NEWEST_FIRST = (VendorSyncRun.started_at.desc(), VendorSyncRun.id.desc())


def parse_status_labels(labels: Optional[Iterable[str]]) -> List[str]:
    """External labels (running/success/error) -> stored statuses; unknown labels are dropped."""
    statuses = []
    for raw in labels or []:
        for label in str(raw).split(","):
            status = RunStatus.from_label(label)
            if status is not None and status.value not in statuses:
                statuses.append(status.value)
    return statuses


class RunObservabilityService:
    """Paginated and aggregated reads over VendorSyncRun."""

    def __init__(self, db: AsyncSession, registry: Optional[VendorRegistry] = None):
        self.db = db
        self.registry = registry or get_registry()

    async def _cursor_row(self, cursor: str, vendor: str) -> Optional[VendorSyncRun]:
        result = await self.db.execute(
            select(VendorSyncRun).where(VendorSyncRun.id == cursor, VendorSyncRun.vendor == vendor)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _from(row: VendorSyncRun):
        """Rows at or after ``row`` in newest-first order."""
        return or_(
            VendorSyncRun.started_at < row.started_at,
            and_(VendorSyncRun.started_at == row.started_at, VendorSyncRun.id <= row.id),
        )

    async def _page(self, filters: Sequence, limit: int, cursor: Optional[str], vendor: str):
        """
        Rows of one page plus the id of the first row beyond it.

        Returns (rows, has_more, next_cursor); an unknown cursor yields an
        empty page.
        """
        conditions = list(filters)
        if cursor:
            cursor_row = await self._cursor_row(cursor, vendor)
            if cursor_row is None:
                return [], False, None
            conditions.append(self._from(cursor_row))

        result = await self.db.execute(
            select(VendorSyncRun).where(*conditions).order_by(*_NEWEST_FIRST).limit(limit + 1)
        )
        rows = list(result.scalars().all())
        has_more = len(rows) > limit
        next_cursor = rows[limit].id if has_more else None
        return rows[:limit], has_more, next_cursor

    async def _count(self, filters: Sequence) -> int:
        result = await self.db.execute(select(func.count(VendorSyncRun.id)).where(*filters))
        return int(result.scalar() or 0)

    async def list_runs(
        self,
        vendor: str,
        limit=None,
        cursor: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> RunPage:
        page_size = clamp_limit(limit, DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE)
        filters = [VendorSyncRun.vendor == vendor]
        status_values = parse_status_labels(statuses)
        if status_values:
            filters.append(VendorSyncRun.status.in_(status_values))

        rows, has_more, next_cursor = await self._page(filters, page_size, cursor, vendor)
        return RunPage(
            items=[RunRead.from_run(row) for row in rows],
            page=1,
            page_size=page_size,
            total_items=await self._count(filters),
            has_more=has_more,
            next_cursor=next_cursor,
        )

    async def aggregate(self, query: ObservabilityQuery, limit=None, cursor: Optional[str] = None) -> ObservabilityWindow:
        """Runs of one vendor whose start lies in [start, end], with status counts for the page."""
        page_size = clamp_limit(limit, DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE)
        filters = [
            VendorSyncRun.vendor == query.vendor_id,
            VendorSyncRun.started_at >= query.start,
            VendorSyncRun.started_at <= query.end,
        ]

        rows, has_more, next_cursor = await self._page(filters, page_size, cursor, query.vendor_id)
        runs = [RunRead.from_run(row) for row in rows]

        counts = StatusCounts()
        for run in runs:
            setattr(counts, run.status, getattr(counts, run.status) + 1)

        latest = await self.db.execute(select(func.max(VendorSyncRun.started_at)).where(*filters))
        return ObservabilityWindow(
            vendor_id=query.vendor_id,
            range=RunRange(start=to_iso(query.start), end=to_iso(query.end)),
            page_size=page_size,
            total_runs=await self._count(filters),
            counts=counts,
            latest_run_at=to_iso(latest.scalar()),
            has_more=has_more,
            next_cursor=next_cursor,
            runs=runs,
        )

    async def overview(self, now: Optional[datetime] = None) -> Overview:
        """Rollup of the last 24 hours plus the runs still in progress."""
        now = now or utcnow()
        since = now - timedelta(hours=24)

        result = await self.db.execute(
            select(VendorSyncRun.status, VendorSyncRun.duration_ms).where(VendorSyncRun.started_at >= since)
        )
        rows = result.all()
        durations = [duration for _, duration in rows if duration is not None]
        last24h = Last24h(
            total=len(rows),
            success=sum(1 for status, _ in rows if status == RunStatus.SUCCESS.value),
            failed=sum(1 for status, _ in rows if status == RunStatus.FAILED.value),
            avg_duration_ms=int(round(sum(durations) / len(durations))) if durations else 0,
        )

        pending = await self.db.execute(
            select(VendorSyncRun)
            .where(VendorSyncRun.status == RunStatus.PENDING.value)
            .order_by(*_NEWEST_FIRST)
            .limit(IN_PROGRESS_LIMIT)
        )
        in_progress = [
            InProgressRun(
                vendor=run.vendor,
                started_at=to_iso(run.started_at),
                run_id=run.id,
                mode=SyncMode.PREVIEW.value if run.dry_run else SyncMode.APPLY.value,
            )
            for run in pending.scalars().all()
        ]
        return Overview(last24h=last24h, in_progress=in_progress)

    async def history(self, limit=None) -> List[VendorHistory]:
        """Latest runs of every known vendor, vendors sorted by slug."""
        per_vendor = clamp_limit(limit, DEFAULT_HISTORY_LIMIT, 1, MAX_HISTORY_LIMIT)

        vendor_rows = await self.db.execute(select(Vendor.slug, Vendor.name))
        labels = {slug: name for slug, name in vendor_rows.all()}
        run_vendors = await self.db.execute(select(VendorSyncRun.vendor).distinct())
        slugs = set(labels) | set(self.registry.slugs()) | {slug for (slug,) in run_vendors.all()}

        history = []
        for slug in sorted(slugs):
            result = await self.db.execute(
                select(VendorSyncRun)
                .where(VendorSyncRun.vendor == slug)
                .order_by(*_NEWEST_FIRST)
                .limit(per_vendor)
            )
            label = self.registry.vendor_label(slug) if slug in self.registry else labels.get(slug, slug)
            history.append(VendorHistory(
                vendor=slug,
                label=label,
                runs=[RunRead.from_run(run) for run in result.scalars().all()],
            ))
        return history

    async def get_run(self, run_id: str) -> Optional[RunRead]:
        run = await self.db.get(VendorSyncRun, run_id)
        return RunRead.from_run(run) if run is not None else None
