# catalog_sync/cli/sync_vendor.py
"""
Preview or apply a vendor catalog from the command line.

    python -m catalog_sync.cli.sync_vendor moscot --source /tmp/moscot.catalog.json
    python -m catalog_sync.cli.sync_vendor moscot --apply --actor ops
"""
import asyncio
import logging
import sys
from datetime import datetime

import click
from dotenv import load_dotenv
from sqlalchemy import select

load_dotenv()

from catalog_sync.core.exceptions import VendorSyncError  # noqa: E402
from catalog_sync.database import async_session  # noqa: E402
from catalog_sync.models import Vendor  # noqa: E402
from catalog_sync.schemas.vendor_sync import SyncRequest  # noqa: E402
from catalog_sync.services.vendor_sync.catalog_loader import locate_catalog  # noqa: E402
from catalog_sync.services.vendor_sync.dispatcher import VendorSyncDispatcher  # noqa: E402
from catalog_sync.services.vendor_sync.registry import normalize_slug  # noqa: E402

logger = logging.getLogger(__name__)


async def run_sync(slug: str, source: str = None, apply: bool = False, actor: str = "cli", limit: int = None):
    """Locate the catalog, dispatch it and return the result."""
    slug = normalize_slug(slug)
    async with async_session() as session:
        result = await session.execute(select(Vendor).where(Vendor.slug == slug))
        vendor = result.scalar_one_or_none()
        configured = vendor.integration.scraper_path if vendor and vendor.integration else None

        catalog = await locate_catalog(slug, explicit=source, configured=configured)
        request = SyncRequest(source_path=catalog.source_path, limit=limit)

        dispatcher = VendorSyncDispatcher(session)
        return await dispatcher.dispatch(slug, request, dry_run=not apply, actor=actor)


@click.command()
@click.argument('slug')
@click.option('--source', 'source', default=None, help='Catalog file or URL (defaults to the configured locations)')
@click.option('--apply', 'apply', is_flag=True, help='Persist the diff instead of previewing it')
@click.option('--actor', default='cli', show_default=True, help='Actor recorded on the run')
@click.option('--limit', type=click.IntRange(1, 500), default=None, help='Only read the first N catalog items')
def sync_vendor(slug, source, apply, actor, limit):
    """Preview (default) or apply the catalog of vendor SLUG."""
    start_time = datetime.now()
    logger.info(f"Starting {'apply' if apply else 'preview'} of {slug} at {start_time}")

    try:
        result = asyncio.run(run_sync(slug, source, apply, actor, limit))
    except VendorSyncError as e:
        logger.exception(f"Sync of {slug} failed")
        click.echo(f"Sync failed: {str(e)}", err=True)
        sys.exit(1)

    counts = result.diff.counts
    click.echo(f"\n{result.mode.capitalize()} of {result.vendor} completed (run {result.run_id})")
    click.echo(f"Source: {result.summary.source_path}")
    click.echo(f"Total: {counts.total}")
    click.echo(f"Created: {counts.created}")
    click.echo(f"Updated: {counts.updated}")
    click.echo(f"Unchanged: {counts.unchanged}")
    click.echo(f"Removed: {counts.removed}")
    click.echo(f"Hash: {result.diff.hash}")
    logger.info(f"Completed {slug} sync in {datetime.now() - start_time}")


if __name__ == '__main__':
    sync_vendor()
