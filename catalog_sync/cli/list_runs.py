# catalog_sync/cli/list_runs.py
"""
Print the recent sync runs of a vendor.

    python -m catalog_sync.cli.list_runs moscot --limit 10 --status error
"""
import asyncio

import click
from dotenv import load_dotenv
from tabulate import tabulate

load_dotenv()

from catalog_sync.database import async_session  # noqa: E402
from catalog_sync.services.vendor_sync.observability import RunObservabilityService  # noqa: E402
from catalog_sync.services.vendor_sync.registry import normalize_slug  # noqa: E402

HEADERS = ["Run", "Status", "Mode", "Started", "Duration (ms)", "Total", "Created", "Updated", "Removed", "Actor"]


def format_rows(runs):
    rows = []
    for run in runs:
        counts = run.counts
        rows.append([
            run.id[:8],
            run.status,
            "preview" if run.dry_run else "apply",
            run.started_at,
            run.duration_ms if run.duration_ms is not None else "-",
            counts.total if counts.total is not None else "-",
            counts.created if counts.created is not None else "-",
            counts.updated if counts.updated is not None else "-",
            counts.removed if counts.removed is not None else "-",
            run.actor or "-",
        ])
    return rows


async def fetch_runs(slug: str, limit: int, statuses):
    async with async_session() as session:
        return await RunObservabilityService(session).list_runs(normalize_slug(slug), limit=limit, statuses=statuses)


@click.command()
@click.argument('slug')
@click.option('--limit', default=20, show_default=True, help='Number of runs to show (1-100)')
@click.option('--status', 'statuses', multiple=True, type=click.Choice(['running', 'success', 'error']),
              help='Only show runs with this status (repeatable)')
def list_runs(slug, limit, statuses):
    """List recent sync runs of vendor SLUG."""
    page = asyncio.run(fetch_runs(slug, limit, list(statuses)))
    if not page.items:
        click.echo(f"No sync runs recorded for {slug}")
        return

    click.echo(tabulate(format_rows(page.items), headers=HEADERS, tablefmt="simple"))
    click.echo(f"\nShowing {len(page.items)} of {page.total_items} runs")
    if page.has_more:
        click.echo(f"More runs available (next cursor: {page.next_cursor})")


if __name__ == '__main__':
    list_runs()
