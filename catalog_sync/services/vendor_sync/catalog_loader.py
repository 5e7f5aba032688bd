"""
Catalog source loading.

A catalog source is a JSON document holding the raw vendor payloads, either
as a top-level array or as ``{"items": [...]}``. Sources are local files or
http(s) URLs.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

import httpx

from catalog_sync.core.config import Settings, get_settings
from catalog_sync.core.exceptions import CatalogSourceError
from catalog_sync.schemas.normalized import is_http_url

logger = logging.getLogger(__name__)


@dataclass
class LoadedCatalog:
    items: List[Any]
    source_path: str


def catalog_env_var(slug: str) -> str:
    """CATALOG_<SLUG>_PATH, e.g. CATALOG_MOSCOT_PATH"""
    return f"CATALOG_{slug.upper().replace('-', '_')}_PATH"


def candidate_paths(
    slug: str,
    explicit: Optional[str] = None,
    configured: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> List[str]:
    """
    Locations tried for a vendor catalog, in order: explicit path, the
    integration's configured path, the CATALOG_<SLUG>_PATH variable and,
    outside production, /tmp/<slug>.catalog.json.
    """
    settings = settings or get_settings()
    candidates: List[str] = []

    def push(value: Optional[str]):
        if not value or not value.strip():
            return
        value = value.strip()
        resolved = value if is_http_url(value) else str(Path(value).expanduser().resolve())
        if resolved not in candidates:
            candidates.append(resolved)

    push(explicit)
    push(configured)
    push(os.environ.get(catalog_env_var(slug)))
    if not settings.is_production:
        push(f"/tmp/{slug}.catalog.json")
    return candidates


def _extract_items(document: Any, source_path: str) -> List[Any]:
    if isinstance(document, list):
        return document
    if isinstance(document, dict) and isinstance(document.get("items"), list):
        return document["items"]
    raise CatalogSourceError(f"Catalog {source_path} must be a JSON array or an object with an items array")


async def _read_file(path: str) -> Any:
    try:
        content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    except FileNotFoundError:
        raise CatalogSourceError(f"Catalog file not found: {path}")
    except OSError as e:
        raise CatalogSourceError(f"Unable to read catalog {path}: {e}")
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise CatalogSourceError(f"Catalog {path} is not valid JSON: {e}")


async def _fetch_url(url: str, timeout: float) -> Any:
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url, headers={"Accept": "application/json"})

            if response.status_code != 200:
                logger.error(f"Catalog fetch failed for {url}: HTTP {response.status_code}")
                raise CatalogSourceError(f"Catalog {url} returned HTTP {response.status_code}")

            return response.json()

    except httpx.RequestError as e:
        logger.error(f"Network error fetching catalog {url}: {str(e)}")
        raise CatalogSourceError(f"Network error fetching catalog {url}: {str(e)}")
    except ValueError as e:
        raise CatalogSourceError(f"Catalog {url} is not valid JSON: {e}")


async def load_catalog(
    source_path: str,
    limit: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> LoadedCatalog:
    """
    Read the raw payloads of one catalog source.

    Raises:
        CatalogSourceError: unreadable, malformed or oversized source
    """
    settings = settings or get_settings()
    if not source_path or not source_path.strip():
        raise CatalogSourceError("sourcePath is empty")
    source_path = source_path.strip()

    if is_http_url(source_path):
        document = await _fetch_url(source_path, settings.SOURCE_FETCH_TIMEOUT)
    else:
        document = await _read_file(source_path)

    items = _extract_items(document, source_path)
    if len(items) > settings.SOURCE_MAX_ITEMS:
        raise CatalogSourceError(
            f"Catalog {source_path} holds {len(items)} items; the limit is {settings.SOURCE_MAX_ITEMS}"
        )
    if limit is not None:
        items = items[:limit]

    logger.info(f"Loaded {len(items)} catalog items from {source_path}")
    return LoadedCatalog(items=items, source_path=source_path)


async def locate_catalog(
    slug: str,
    explicit: Optional[str] = None,
    configured: Optional[str] = None,
    limit: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> LoadedCatalog:
    """Load the first readable candidate source of a vendor."""
    settings = settings or get_settings()
    candidates = candidate_paths(slug, explicit, configured, settings)
    if not candidates:
        raise CatalogSourceError(f"No catalog source configured for {slug}")

    errors = []
    for candidate in candidates:
        try:
            return await load_catalog(candidate, limit=limit, settings=settings)
        except CatalogSourceError as e:
            logger.debug(f"Catalog candidate {candidate} rejected: {e}")
            errors.append(str(e))

    raise CatalogSourceError(f"Unable to read {slug} catalog from {', '.join(candidates)}: {errors[-1]}")
